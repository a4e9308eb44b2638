"""
Replication log for workspace replication.

A replication log is the durable record of progress for one direction of
replication (source -> target). It is keyed by a replication id derived
from the ordered pair of workspace ids and holds a history of runs,
most recent first. Only the newest entry drives resumption; older entries
are an audit trail.

History entries follow the CouchDB replication log layout:

    {
        "session_id": "6c0f...",
        "start_time": "Mon, 19 Oct 2026 09:15:02 UTC",
        "end_time": "Mon, 19 Oct 2026 09:15:03 UTC",
        "recorded_seq": 2,
        "missing_checked": 2,
        "missing_found": 2,
        "docs_read": 2,
        "docs_written": 2
    }

Invariants:
    - replication_id(a, b) != replication_id(b, a) for a != b
    - History is ordered most-recent-first
    - A log is persisted once per successful run, with a version check

How to change safely:
    - Add new history fields with defaults so old rows still load
    - Never reorder history; readers take index 0
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..errors import ReplicationLogNotFoundError
from ..storage import ReplicationLogRow, SiteStore

logger = logging.getLogger(__name__)

START_TIME_FORMAT = "%a, %d %b %Y %H:%M:%S UTC"


def make_replication_id(source_workspace_id: str, target_workspace_id: str) -> str:
    """Derive the replication id for one direction of replication.

    The ids are joined with a newline, which cannot appear in a workspace
    id, so different pairs never hash the same input.
    """
    key = f"{source_workspace_id}\n{target_workspace_id}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()


def format_timestamp(moment: datetime | None = None) -> str:
    """Format a UTC wall-clock time the way history entries store it."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime(START_TIME_FORMAT)


@dataclass(frozen=True)
class HistoryEntry:
    """One successful replication run.

    Attributes:
        recorded_seq: Source sequence id reached by the run
        start_time: When the run started (audit only)
        session_id: Unique id of the run
        end_time: When the run finished (audit only)
        missing_checked: Candidate revisions sent to the diff
        missing_found: Revisions the target was missing
        docs_read: Revisions loaded from the source
        docs_written: Revisions saved into the target
    """

    recorded_seq: int
    start_time: str
    session_id: str
    end_time: str = ""
    missing_checked: int = 0
    missing_found: int = 0
    docs_read: int = 0
    docs_written: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "recorded_seq": self.recorded_seq,
            "start_time": self.start_time,
            "session_id": self.session_id,
            "end_time": self.end_time,
            "missing_checked": self.missing_checked,
            "missing_found": self.missing_found,
            "docs_read": self.docs_read,
            "docs_written": self.docs_written,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            recorded_seq=int(data["recorded_seq"]),
            start_time=data["start_time"],
            session_id=data["session_id"],
            end_time=data.get("end_time", ""),
            missing_checked=data.get("missing_checked", 0),
            missing_found=data.get("missing_found", 0),
            docs_read=data.get("docs_read", 0),
            docs_written=data.get("docs_written", 0),
        )


@dataclass
class ReplicationLog:
    """Replication progress for one source -> target direction.

    Attributes:
        replication_id: Deterministic id of the direction
        source_workspace_id: Source workspace
        target_workspace_id: Target workspace
        history: Runs, most recent first
        session_id: Session of the last successful run
        source_last_seq: Watermark reached by the last successful run
        version: Stored version this object was loaded at (0 = new)
        history_limit: Maximum entries kept (0 = unbounded)
    """

    replication_id: str
    source_workspace_id: str
    target_workspace_id: str
    history: list[HistoryEntry] = field(default_factory=list)
    session_id: str | None = None
    source_last_seq: int = 0
    version: int = 0
    history_limit: int = 0

    @property
    def is_new(self) -> bool:
        return self.version == 0

    @property
    def last_sequence_id(self) -> int:
        """Watermark to resume from: newest recorded_seq, or 0."""
        return self.history[0].recorded_seq if self.history else 0

    def add_history(self, entry: HistoryEntry) -> None:
        """Prepend a run to the history, pruning the oldest beyond the limit."""
        self.history.insert(0, entry)
        self.session_id = entry.session_id
        self.source_last_seq = entry.recorded_seq
        if self.history_limit and len(self.history) > self.history_limit:
            del self.history[self.history_limit :]

    def to_dict(self) -> dict[str, Any]:
        return {
            "replication_id": self.replication_id,
            "source_workspace_id": self.source_workspace_id,
            "target_workspace_id": self.target_workspace_id,
            "session_id": self.session_id,
            "source_last_seq": self.source_last_seq,
            "version": self.version,
            "history": [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_row(cls, row: ReplicationLogRow, history_limit: int = 0) -> ReplicationLog:
        return cls(
            replication_id=row.replication_id,
            source_workspace_id=row.source_workspace_id,
            target_workspace_id=row.target_workspace_id,
            history=[HistoryEntry.from_dict(item) for item in row.history],
            session_id=row.session_id,
            source_last_seq=row.source_last_seq,
            version=row.version,
            history_limit=history_limit,
        )

    def to_row(self) -> ReplicationLogRow:
        return ReplicationLogRow(
            replication_id=self.replication_id,
            source_workspace_id=self.source_workspace_id,
            target_workspace_id=self.target_workspace_id,
            session_id=self.session_id,
            source_last_seq=self.source_last_seq,
            history=[entry.to_dict() for entry in self.history],
            version=self.version,
        )


class ReplicationLogStore:
    """Loads and persists replication logs.

    Example:
        >>> logs = ReplicationLogStore(store, history_limit=50)
        >>> log = await logs.load_or_create(make_replication_id("live", "stage"), "live", "stage")
        >>> log.add_history(entry)
        >>> await logs.save(log)
    """

    def __init__(self, store: SiteStore, history_limit: int = 50) -> None:
        self.store = store
        self.history_limit = history_limit

    async def load(self, replication_id: str) -> ReplicationLog:
        """Load a stored log.

        Raises:
            ReplicationLogNotFoundError: If no log is stored under the id
        """
        row = await self.store.get_replication_log_row(replication_id)
        if row is None:
            raise ReplicationLogNotFoundError(replication_id)
        return ReplicationLog.from_row(row, history_limit=self.history_limit)

    async def load_or_create(
        self,
        replication_id: str,
        source_workspace_id: str,
        target_workspace_id: str,
    ) -> ReplicationLog:
        """Load the log, or build an empty unsaved one."""
        row = await self.store.get_replication_log_row(replication_id)
        if row is None:
            logger.debug("Created replication log", extra={"replication_id": replication_id})
            return ReplicationLog(
                replication_id=replication_id,
                source_workspace_id=source_workspace_id,
                target_workspace_id=target_workspace_id,
                history_limit=self.history_limit,
            )
        return ReplicationLog.from_row(row, history_limit=self.history_limit)

    async def save(self, log: ReplicationLog) -> ReplicationLog:
        """Persist a log and advance its version.

        Raises:
            ReplicationConflictError: If the stored version moved since load
        """
        log.version = await self.store.put_replication_log_row(log.to_row())
        logger.debug(
            "Saved replication log",
            extra={"replication_id": log.replication_id, "version": log.version},
        )
        return log

    async def list_logs(self) -> list[ReplicationLog]:
        rows = await self.store.list_replication_log_rows()
        return [ReplicationLog.from_row(row, history_limit=self.history_limit) for row in rows]
