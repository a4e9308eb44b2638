"""
Replication module for workspace replication.

This module handles:
- Revision diff between source changes and target contents
- Replication logs (resumable per-direction progress)
- The default workspace-to-workspace replicator
- Dispatch to the first applicable replicator

Invariants:
    - Replication is idempotent: a second run with no new source changes
      transfers nothing
    - A failed run never advances the watermark
    - The active workspace is restored after every run

How to change safely:
    - Verify idempotency with interrupted-run tests
    - Keep replication ids order-sensitive
"""

from .differ import RevisionDiffer, RevisionPresenceIndex, group_changes
from .manager import ReplicationManager
from .replication_log import (
    HistoryEntry,
    ReplicationLog,
    ReplicationLogStore,
    make_replication_id,
)
from .replicator import DefaultReplicator, EntityStore, Replicator

__all__ = [
    "DefaultReplicator",
    "EntityStore",
    "HistoryEntry",
    "ReplicationLog",
    "ReplicationLogStore",
    "ReplicationManager",
    "Replicator",
    "RevisionDiffer",
    "RevisionPresenceIndex",
    "group_changes",
    "make_replication_id",
]
