"""
Site SQLite store for workspace replication.

This module manages the single SQLite database shared by every workspace
on a site. It stores:
- Workspaces
- Entity revisions (immutable payload versions)
- The content_workspace presence index (which revisions a workspace holds)
- The current (default) revision of each entity per workspace
- The per-workspace sequence index
- Replication logs

All workspaces live in one file: replication between them is a same-site
operation on one storage backend.

Invariants:
    - Revision ids are allocated once and never reused
    - Sequence ids are strictly increasing per workspace, starting at 1
    - Sequence ids are allocated inside an immediate transaction
    - Every sqlite3.Error leaves this module as a StorageError

How to change safely:
    - Schema migrations must be backward compatible
    - Use transactions for all multi-statement writes
    - Keep presence writes idempotent (INSERT OR IGNORE)

Table schema:
    workspaces:
        - workspace_id TEXT PRIMARY KEY
        - label TEXT
        - created_at INTEGER (Unix ms)

    entity_revisions:
        - revision_id INTEGER PRIMARY KEY AUTOINCREMENT
        - entity_type_id TEXT
        - entity_id TEXT
        - payload_json TEXT
        - created_at INTEGER

    content_workspace:
        - workspace_id, entity_type_id, revision_id (PRIMARY KEY)
        - entity_id TEXT
        - added_at INTEGER

    current_revisions:
        - workspace_id, entity_type_id, entity_id (PRIMARY KEY)
        - revision_id INTEGER
        - updated_at INTEGER

    sequence_index:
        - workspace_id, sequence_id (PRIMARY KEY)
        - entity_type_id, entity_id, revision_id
        - recorded_at INTEGER

    replication_logs:
        - replication_id TEXT PRIMARY KEY
        - source_workspace_id, target_workspace_id TEXT
        - session_id TEXT, source_last_seq INTEGER
        - history_json TEXT
        - version INTEGER (optimistic concurrency counter)
        - updated_at INTEGER
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
import time
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import (
    InvalidIdentifierError,
    ReplicationConflictError,
    RevisionNotFoundError,
    StorageError,
)

logger = logging.getLogger(__name__)

WORKSPACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# SQLite caps host parameters per statement; keep IN lists under it
_MAX_IN_PARAMS = 500


@dataclass
class Workspace:
    """A logical partition of content revisions.

    Attributes:
        workspace_id: Unique workspace identifier
        label: Human-readable name
        created_at: Creation timestamp (Unix ms)
    """

    workspace_id: str
    label: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspace_id": self.workspace_id,
            "label": self.label,
            "created_at": self.created_at,
        }


@dataclass
class EntityRevision:
    """An immutable version of an entity's content.

    Attributes:
        entity_type_id: Entity type (e.g. "node")
        entity_id: Entity identifier, shared by all its revisions
        revision_id: Unique revision identifier
        payload: Field values of this revision
        created_at: Creation timestamp (Unix ms)
        is_default_revision: Whether saving should make this the current
            revision of the entity. Not persisted with the revision.
    """

    entity_type_id: str
    entity_id: str
    revision_id: int
    payload: dict[str, Any]
    created_at: int
    is_default_revision: bool = False


@dataclass(frozen=True)
class Change:
    """One revision becoming current in a workspace.

    Attributes:
        workspace_id: Workspace the change was recorded in
        sequence_id: Position in the workspace's sequence index
        entity_type_id: Entity type
        entity_id: Entity identifier
        revision_id: Revision that became current
        recorded_at: When the change was recorded (Unix ms)
    """

    workspace_id: str
    sequence_id: int
    entity_type_id: str
    entity_id: str
    revision_id: int
    recorded_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspace_id": self.workspace_id,
            "sequence_id": self.sequence_id,
            "entity_type_id": self.entity_type_id,
            "entity_id": self.entity_id,
            "revision_id": self.revision_id,
            "recorded_at": self.recorded_at,
        }


@dataclass
class ReplicationLogRow:
    """Raw persisted form of a replication log."""

    replication_id: str
    source_workspace_id: str
    target_workspace_id: str
    session_id: str | None
    source_last_seq: int
    history: list[dict[str, Any]] = field(default_factory=list)
    version: int = 0
    updated_at: int = 0


def validate_workspace_id(workspace_id: str) -> None:
    """Reject workspace ids that are empty or carry separator characters.

    Raises:
        InvalidIdentifierError: If the id is not made of [A-Za-z0-9_-]
    """
    if not workspace_id or not WORKSPACE_ID_PATTERN.match(workspace_id):
        raise InvalidIdentifierError(
            f"Invalid workspace id: {workspace_id!r}", identifier=workspace_id
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


class SiteStore:
    """Site-wide SQLite store for workspaces, revisions and replication state.

    This class provides the storage collaborators the replicator consumes:
    - Workspace resolution
    - Revision load/save
    - Revision presence index
    - Sequence index
    - Replication log persistence

    Thread safety:
        Each operation opens its own connection. SQLite serializes writers;
        BEGIN IMMEDIATE takes the write lock before reading the next
        sequence id so concurrent writers never allocate the same one.

    Example:
        >>> store = SiteStore("/var/lib/wsrepl")
        >>> await store.initialize()
        >>> await store.create_workspace("live", label="Live")
        >>> rev = await store.create_revision(
        ...     workspace_id="live",
        ...     entity_type_id="node",
        ...     payload={"title": "Hello"},
        ... )
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        db_name: str = "site.db",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the site store.

        Args:
            data_dir: Directory for the SQLite database file
            db_name: Database file name
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.data_dir = Path(data_dir)
        self.db_name = db_name
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._lock = asyncio.Lock()

    @property
    def db_path(self) -> Path:
        """Path to the site database file."""
        return self.data_dir / self.db_name

    @contextmanager
    def _get_connection(self, create: bool = False) -> Iterator[sqlite3.Connection]:
        """Get a database connection.

        Args:
            create: Whether to create the database if it does not exist

        Yields:
            SQLite connection

        Raises:
            StorageError: If the database is missing or SQLite fails
        """
        if not create and not self.db_path.exists():
            raise StorageError(
                f"Site database not initialized: {self.db_path}", operation="connect"
            )

        self.data_dir.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open site database: {e}", operation="connect") from e
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        except sqlite3.Error as e:
            raise StorageError(f"SQLite error: {e}", operation="execute") from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        """Run a block inside BEGIN IMMEDIATE / COMMIT, rolling back on error."""
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            raise

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS workspaces (
                workspace_id TEXT PRIMARY KEY,
                label TEXT NOT NULL,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS entity_revisions (
                revision_id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_type_id TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                payload_json TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_revisions_entity
                ON entity_revisions(entity_type_id, entity_id);

            -- Every revision a workspace holds, current or not
            CREATE TABLE IF NOT EXISTS content_workspace (
                workspace_id TEXT NOT NULL REFERENCES workspaces(workspace_id),
                entity_type_id TEXT NOT NULL,
                revision_id INTEGER NOT NULL REFERENCES entity_revisions(revision_id),
                entity_id TEXT NOT NULL,
                added_at INTEGER NOT NULL,
                PRIMARY KEY (workspace_id, entity_type_id, revision_id)
            );

            CREATE TABLE IF NOT EXISTS current_revisions (
                workspace_id TEXT NOT NULL REFERENCES workspaces(workspace_id),
                entity_type_id TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                revision_id INTEGER NOT NULL REFERENCES entity_revisions(revision_id),
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (workspace_id, entity_type_id, entity_id)
            );

            CREATE TABLE IF NOT EXISTS sequence_index (
                workspace_id TEXT NOT NULL REFERENCES workspaces(workspace_id),
                sequence_id INTEGER NOT NULL,
                entity_type_id TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                revision_id INTEGER NOT NULL,
                recorded_at INTEGER NOT NULL,
                PRIMARY KEY (workspace_id, sequence_id)
            );

            CREATE TABLE IF NOT EXISTS replication_logs (
                replication_id TEXT PRIMARY KEY,
                source_workspace_id TEXT NOT NULL,
                target_workspace_id TEXT NOT NULL,
                session_id TEXT,
                source_last_seq INTEGER NOT NULL DEFAULT 0,
                history_json TEXT NOT NULL DEFAULT '[]',
                version INTEGER NOT NULL DEFAULT 0,
                updated_at INTEGER NOT NULL
            );

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        async with self._lock:
            with self._get_connection(create=True) as conn:
                self._create_schema(conn)
        logger.info("Initialized site database", extra={"db_path": str(self.db_path)})

    # Workspaces

    async def create_workspace(self, workspace_id: str, label: str | None = None) -> Workspace:
        """Create a workspace.

        Args:
            workspace_id: Unique identifier ([A-Za-z0-9_-]+)
            label: Human-readable name (defaults to the id)

        Returns:
            Created Workspace

        Raises:
            InvalidIdentifierError: If the id is malformed
            StorageError: If the workspace already exists
        """
        validate_workspace_id(workspace_id)
        now = _now_ms()
        label = label or workspace_id

        with self._get_connection() as conn:
            try:
                conn.execute(
                    "INSERT INTO workspaces (workspace_id, label, created_at) VALUES (?, ?, ?)",
                    (workspace_id, label, now),
                )
            except sqlite3.IntegrityError as e:
                raise StorageError(
                    f"Workspace already exists: {workspace_id}", operation="create_workspace"
                ) from e

        logger.info("Created workspace", extra={"workspace_id": workspace_id})
        return Workspace(workspace_id=workspace_id, label=label, created_at=now)

    async def get_workspace(self, workspace_id: str) -> Workspace | None:
        """Get a workspace by id, or None if it does not exist."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM workspaces WHERE workspace_id = ?",
                (workspace_id,),
            ).fetchone()
            if not row:
                return None
            return Workspace(
                workspace_id=row["workspace_id"],
                label=row["label"],
                created_at=row["created_at"],
            )

    async def list_workspaces(self) -> list[Workspace]:
        """List all workspaces ordered by id."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM workspaces ORDER BY workspace_id")
            return [
                Workspace(
                    workspace_id=row["workspace_id"],
                    label=row["label"],
                    created_at=row["created_at"],
                )
                for row in cursor.fetchall()
            ]

    # Revisions

    async def create_revision(
        self,
        workspace_id: str,
        entity_type_id: str,
        payload: dict[str, Any],
        entity_id: str | None = None,
    ) -> EntityRevision:
        """Create a new revision and make it current in a workspace.

        The revision, its presence row, the current pointer and the
        sequence entry are written in one transaction.

        Args:
            workspace_id: Workspace the revision is authored in
            entity_type_id: Entity type
            payload: Field values
            entity_id: Existing entity to revise (new entity if omitted)

        Returns:
            The created EntityRevision (is_default_revision=True)
        """
        if entity_id is None:
            entity_id = str(uuid.uuid4())
        now = _now_ms()

        with self._get_connection() as conn:
            with self._transaction(conn):
                cursor = conn.execute(
                    """
                    INSERT INTO entity_revisions (entity_type_id, entity_id, payload_json, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (entity_type_id, entity_id, json.dumps(payload), now),
                )
                revision_id = cursor.lastrowid
                self._add_presence(conn, workspace_id, entity_type_id, entity_id, revision_id, now)
                self._set_current(conn, workspace_id, entity_type_id, entity_id, revision_id, now)
                sequence_id = self._append_sequence(
                    conn, workspace_id, entity_type_id, entity_id, revision_id, now
                )

        logger.debug(
            "Created revision",
            extra={
                "workspace_id": workspace_id,
                "entity_type_id": entity_type_id,
                "entity_id": entity_id,
                "revision_id": revision_id,
                "sequence_id": sequence_id,
            },
        )

        return EntityRevision(
            entity_type_id=entity_type_id,
            entity_id=entity_id,
            revision_id=revision_id,
            payload=payload,
            created_at=now,
            is_default_revision=True,
        )

    async def load_revision(self, entity_type_id: str, revision_id: int) -> EntityRevision:
        """Load one exact revision.

        Raises:
            RevisionNotFoundError: If no such revision exists for the type
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM entity_revisions WHERE entity_type_id = ? AND revision_id = ?",
                (entity_type_id, revision_id),
            ).fetchone()

        if not row:
            raise RevisionNotFoundError(entity_type_id, revision_id)

        return EntityRevision(
            entity_type_id=row["entity_type_id"],
            entity_id=row["entity_id"],
            revision_id=row["revision_id"],
            payload=json.loads(row["payload_json"]),
            created_at=row["created_at"],
        )

    async def save_revision(self, workspace_id: str, entity: EntityRevision) -> int | None:
        """Persist an existing revision into a workspace.

        Records that the workspace holds the revision and, if the entity is
        flagged as default revision, makes it the current revision of the
        entity there. A sequence entry is appended only when the workspace
        state actually changed, so re-saving is a no-op.

        Args:
            workspace_id: Workspace to save into
            entity: Revision to save

        Returns:
            The sequence id recorded, or None if nothing changed
        """
        now = _now_ms()

        with self._get_connection() as conn:
            with self._transaction(conn):
                changed = self._add_presence(
                    conn,
                    workspace_id,
                    entity.entity_type_id,
                    entity.entity_id,
                    entity.revision_id,
                    now,
                )
                if entity.is_default_revision:
                    current = self._get_current_id(
                        conn, workspace_id, entity.entity_type_id, entity.entity_id
                    )
                    if current != entity.revision_id:
                        self._set_current(
                            conn,
                            workspace_id,
                            entity.entity_type_id,
                            entity.entity_id,
                            entity.revision_id,
                            now,
                        )
                        changed = True

                sequence_id = None
                if changed:
                    sequence_id = self._append_sequence(
                        conn,
                        workspace_id,
                        entity.entity_type_id,
                        entity.entity_id,
                        entity.revision_id,
                        now,
                    )

        logger.debug(
            "Saved revision",
            extra={
                "workspace_id": workspace_id,
                "entity_type_id": entity.entity_type_id,
                "revision_id": entity.revision_id,
                "sequence_id": sequence_id,
            },
        )
        return sequence_id

    async def get_present_revision_ids(
        self,
        entity_type_id: str,
        workspace_id: str,
        candidate_ids: Iterable[int],
    ) -> set[int]:
        """Return the subset of candidate revision ids the workspace holds.

        Checks all revisions the workspace holds, not only current ones.
        """
        candidates = list(dict.fromkeys(candidate_ids))
        if not candidates:
            return set()

        present: set[int] = set()
        with self._get_connection() as conn:
            for start in range(0, len(candidates), _MAX_IN_PARAMS):
                chunk = candidates[start : start + _MAX_IN_PARAMS]
                placeholders = ", ".join("?" for _ in chunk)
                cursor = conn.execute(
                    f"""
                    SELECT revision_id FROM content_workspace
                    WHERE workspace_id = ? AND entity_type_id = ?
                    AND revision_id IN ({placeholders})
                    """,
                    [workspace_id, entity_type_id, *chunk],
                )
                present.update(row[0] for row in cursor.fetchall())
        return present

    async def get_current_revision(
        self,
        workspace_id: str,
        entity_type_id: str,
        entity_id: str,
    ) -> EntityRevision | None:
        """Get the current revision of an entity in a workspace."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT r.* FROM current_revisions c
                JOIN entity_revisions r ON r.revision_id = c.revision_id
                WHERE c.workspace_id = ? AND c.entity_type_id = ? AND c.entity_id = ?
                """,
                (workspace_id, entity_type_id, entity_id),
            ).fetchone()
            if not row:
                return None
            return EntityRevision(
                entity_type_id=row["entity_type_id"],
                entity_id=row["entity_id"],
                revision_id=row["revision_id"],
                payload=json.loads(row["payload_json"]),
                created_at=row["created_at"],
                is_default_revision=True,
            )

    # Sequence index

    async def append_sequence(
        self,
        workspace_id: str,
        entity_type_id: str,
        entity_id: str,
        revision_id: int,
    ) -> int:
        """Append an entry to a workspace's sequence index.

        Returns:
            The allocated sequence id
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                return self._append_sequence(
                    conn, workspace_id, entity_type_id, entity_id, revision_id, _now_ms()
                )

    async def get_last_sequence_id(self, workspace_id: str) -> int:
        """Latest sequence id of a workspace, or 0 if it has none."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(sequence_id), 0) FROM sequence_index WHERE workspace_id = ?",
                (workspace_id,),
            ).fetchone()
            return row[0]

    async def get_sequences(
        self,
        workspace_id: str,
        start: int,
        stop: int | None = None,
        limit: int | None = None,
    ) -> list[Change]:
        """Get sequence entries with start <= sequence_id (<= stop), ascending."""
        query = "SELECT * FROM sequence_index WHERE workspace_id = ? AND sequence_id >= ?"
        params: list[Any] = [workspace_id, start]
        if stop is not None:
            query += " AND sequence_id <= ?"
            params.append(stop)
        query += " ORDER BY sequence_id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return [
                Change(
                    workspace_id=row["workspace_id"],
                    sequence_id=row["sequence_id"],
                    entity_type_id=row["entity_type_id"],
                    entity_id=row["entity_id"],
                    revision_id=row["revision_id"],
                    recorded_at=row["recorded_at"],
                )
                for row in cursor.fetchall()
            ]

    # Replication logs

    async def get_replication_log_row(self, replication_id: str) -> ReplicationLogRow | None:
        """Get the stored replication log, or None."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM replication_logs WHERE replication_id = ?",
                (replication_id,),
            ).fetchone()
            return self._log_row(row) if row else None

    async def list_replication_log_rows(self) -> list[ReplicationLogRow]:
        """List all stored replication logs, most recently updated first."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM replication_logs ORDER BY updated_at DESC")
            return [self._log_row(row) for row in cursor.fetchall()]

    async def put_replication_log_row(self, row: ReplicationLogRow) -> int:
        """Persist a replication log with an optimistic version check.

        The row's version is the version it was loaded at (0 = never
        stored). The write succeeds only if the stored version still
        matches, and the stored version is then incremented.

        Returns:
            The new stored version

        Raises:
            ReplicationConflictError: If another writer stored the log first
        """
        now = _now_ms()
        history_json = json.dumps(row.history)

        with self._get_connection() as conn:
            with self._transaction(conn):
                existing = conn.execute(
                    "SELECT version FROM replication_logs WHERE replication_id = ?",
                    (row.replication_id,),
                ).fetchone()
                actual_version = existing[0] if existing else 0
                if actual_version != row.version:
                    raise ReplicationConflictError(
                        f"Replication log {row.replication_id} was modified concurrently",
                        replication_id=row.replication_id,
                        expected_version=row.version,
                        actual_version=actual_version,
                    )

                new_version = row.version + 1
                conn.execute(
                    """
                    INSERT INTO replication_logs (replication_id, source_workspace_id,
                        target_workspace_id, session_id, source_last_seq, history_json,
                        version, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(replication_id) DO UPDATE SET
                        session_id = excluded.session_id,
                        source_last_seq = excluded.source_last_seq,
                        history_json = excluded.history_json,
                        version = excluded.version,
                        updated_at = excluded.updated_at
                    """,
                    (
                        row.replication_id,
                        row.source_workspace_id,
                        row.target_workspace_id,
                        row.session_id,
                        row.source_last_seq,
                        history_json,
                        new_version,
                        now,
                    ),
                )

        return new_version

    async def get_stats(self, workspace_id: str) -> dict[str, int]:
        """Get statistics for a workspace.

        Returns:
            Dictionary with counts
        """
        with self._get_connection() as conn:
            stats = {}

            cursor = conn.execute(
                "SELECT COUNT(*) FROM content_workspace WHERE workspace_id = ?", (workspace_id,)
            )
            stats["revisions"] = cursor.fetchone()[0]

            cursor = conn.execute(
                "SELECT COUNT(*) FROM current_revisions WHERE workspace_id = ?", (workspace_id,)
            )
            stats["entities"] = cursor.fetchone()[0]

            cursor = conn.execute(
                "SELECT COALESCE(MAX(sequence_id), 0) FROM sequence_index WHERE workspace_id = ?",
                (workspace_id,),
            )
            stats["last_sequence_id"] = cursor.fetchone()[0]

            return stats

    # Internal helpers, called inside an open transaction

    def _add_presence(
        self,
        conn: sqlite3.Connection,
        workspace_id: str,
        entity_type_id: str,
        entity_id: str,
        revision_id: int,
        now: int,
    ) -> bool:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO content_workspace
                (workspace_id, entity_type_id, revision_id, entity_id, added_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (workspace_id, entity_type_id, revision_id, entity_id, now),
        )
        return cursor.rowcount > 0

    def _get_current_id(
        self,
        conn: sqlite3.Connection,
        workspace_id: str,
        entity_type_id: str,
        entity_id: str,
    ) -> int | None:
        row = conn.execute(
            """
            SELECT revision_id FROM current_revisions
            WHERE workspace_id = ? AND entity_type_id = ? AND entity_id = ?
            """,
            (workspace_id, entity_type_id, entity_id),
        ).fetchone()
        return row[0] if row else None

    def _set_current(
        self,
        conn: sqlite3.Connection,
        workspace_id: str,
        entity_type_id: str,
        entity_id: str,
        revision_id: int,
        now: int,
    ) -> None:
        conn.execute(
            """
            INSERT INTO current_revisions
                (workspace_id, entity_type_id, entity_id, revision_id, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(workspace_id, entity_type_id, entity_id) DO UPDATE SET
                revision_id = excluded.revision_id,
                updated_at = excluded.updated_at
            """,
            (workspace_id, entity_type_id, entity_id, revision_id, now),
        )

    def _append_sequence(
        self,
        conn: sqlite3.Connection,
        workspace_id: str,
        entity_type_id: str,
        entity_id: str,
        revision_id: int,
        now: int,
    ) -> int:
        row = conn.execute(
            "SELECT COALESCE(MAX(sequence_id), 0) FROM sequence_index WHERE workspace_id = ?",
            (workspace_id,),
        ).fetchone()
        sequence_id = row[0] + 1
        conn.execute(
            """
            INSERT INTO sequence_index
                (workspace_id, sequence_id, entity_type_id, entity_id, revision_id, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (workspace_id, sequence_id, entity_type_id, entity_id, revision_id, now),
        )
        return sequence_id

    def _log_row(self, row: sqlite3.Row) -> ReplicationLogRow:
        return ReplicationLogRow(
            replication_id=row["replication_id"],
            source_workspace_id=row["source_workspace_id"],
            target_workspace_id=row["target_workspace_id"],
            session_id=row["session_id"],
            source_last_seq=row["source_last_seq"],
            history=json.loads(row["history_json"]),
            version=row["version"],
            updated_at=row["updated_at"],
        )
