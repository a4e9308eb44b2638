"""
Storage module for workspace replication.

This module holds the site SQLite store that backs every collaborator the
replicator consumes: workspace resolution, revision load/save, the revision
presence index, the sequence index and replication log persistence.

Invariants:
    - One SQLite file per site, shared by all workspaces
    - Sequence ids are strictly increasing per workspace
    - Storage failures surface as StorageError

How to change safely:
    - Keep collaborator signatures stable; the replicator depends on them
    - Use transactions for all multi-statement operations
"""

from .site_store import (
    Change,
    EntityRevision,
    ReplicationLogRow,
    SiteStore,
    Workspace,
    validate_workspace_id,
)

__all__ = [
    "Change",
    "EntityRevision",
    "ReplicationLogRow",
    "SiteStore",
    "Workspace",
    "validate_workspace_id",
]
