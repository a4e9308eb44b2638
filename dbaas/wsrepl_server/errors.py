"""
Error types for the workspace replication server.

This module defines all exception types raised by the replication engine
and its storage collaborators:
- ReplicationError: Base exception
- InvalidIdentifierError: Malformed upstream descriptor
- NotFoundError: Workspace, log or upstream does not resolve
- StorageError: Read/write failure in the site store
- ReplicationConflictError: Another run holds the same replication id
- NoApplicableReplicatorError: No registered replicator accepts the pair

Invariants:
    - All errors inherit from ReplicationError
    - Errors include context for debugging
    - Nothing in the engine swallows these; callers decide on retries
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ReplicationError(Exception):
    """Base exception for all replication errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "REPLICATION_ERROR"
        self.details = details or {}


class InvalidIdentifierError(ReplicationError):
    """Upstream descriptor is malformed.

    Raised when:
    - A plugin id has no ':' separator
    - A workspace id contains characters outside [A-Za-z0-9_-]
    """

    def __init__(self, message: str, identifier: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_IDENTIFIER",
            details={"identifier": identifier},
        )
        self.identifier = identifier


class NotFoundError(ReplicationError):
    """Resource not found."""

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class WorkspaceNotFoundError(NotFoundError):
    """Workspace id does not resolve."""

    def __init__(self, workspace_id: str) -> None:
        super().__init__(
            f"Workspace not found: {workspace_id}",
            resource_type="workspace",
            resource_id=workspace_id,
        )
        self.workspace_id = workspace_id


class ReplicationLogNotFoundError(NotFoundError):
    """No replication log stored under the given id."""

    def __init__(self, replication_id: str) -> None:
        super().__init__(
            f"Replication log not found: {replication_id}",
            resource_type="replication_log",
            resource_id=replication_id,
        )
        self.replication_id = replication_id


class UpstreamNotFoundError(NotFoundError):
    """No upstream registered under the given plugin id."""

    def __init__(self, plugin_id: str) -> None:
        super().__init__(
            f"Upstream not registered: {plugin_id}",
            resource_type="upstream",
            resource_id=plugin_id,
        )
        self.plugin_id = plugin_id


class StorageError(ReplicationError):
    """Read or write failure in the storage layer.

    Raised when:
    - SQLite reports an error
    - A requested revision does not exist
    - A workspace is created twice
    """

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="STORAGE_ERROR",
            details={"operation": operation},
        )
        self.operation = operation


class RevisionNotFoundError(StorageError):
    """Entity revision does not exist."""

    def __init__(self, entity_type_id: str, revision_id: int) -> None:
        super().__init__(
            f"Revision {revision_id} of entity type '{entity_type_id}' not found",
            operation="load_revision",
        )
        self.details.update({"entity_type_id": entity_type_id, "revision_id": revision_id})
        self.entity_type_id = entity_type_id
        self.revision_id = revision_id


class ReplicationConflictError(ReplicationError):
    """Concurrent replication for the same source/target direction.

    Raised when:
    - A run for the same replication id is already in flight
    - The replication log changed underneath a run (version mismatch)
    """

    def __init__(
        self,
        message: str,
        replication_id: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONCURRENCY_CONFLICT",
            details={
                "replication_id": replication_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        self.replication_id = replication_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class NoApplicableReplicatorError(ReplicationError):
    """No registered replicator applies to the source/target pair."""

    def __init__(self, source_id: str, target_id: str) -> None:
        super().__init__(
            f"No replicator applies to {source_id} -> {target_id}",
            code="NO_REPLICATOR",
            details={"source": source_id, "target": target_id},
        )
        self.source_id = source_id
        self.target_id = target_id
