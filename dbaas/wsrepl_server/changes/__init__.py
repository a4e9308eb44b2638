"""
Changes module for workspace replication.

This module provides the per-workspace sequence index and the change log
built on top of it.
"""

from ..storage import Change
from .change_log import ChangeLog, ChangesQuery
from .sequence_index import SequenceIndex

__all__ = [
    "Change",
    "ChangeLog",
    "ChangesQuery",
    "SequenceIndex",
]
