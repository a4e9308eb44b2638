"""
Workspace module for workspace replication.

This module resolves workspace ids and owns the process-wide active
workspace context.
"""

from .manager import WorkspaceManager

__all__ = ["WorkspaceManager"]
