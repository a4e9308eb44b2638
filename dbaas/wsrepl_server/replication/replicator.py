"""
Default replicator: workspace to workspace on a single site.

Replication roughly follows the CouchDB replication protocol
(http://docs.couchdb.org/en/2.1.0/replication/protocol.html):

1. Resolve source and target workspaces
2. Load (or create) the replication log for source -> target
3. Read changes in the source since the last recorded sequence
4. Diff the changed revisions against what the target holds
5. Load each missing revision and flag it as the default revision
6. Save the revisions into the target
7. Record the source's latest sequence in the log and persist it

Invariants:
    - The active workspace is restored on every exit path
    - Nothing is written to the replication log unless every save succeeded
    - A failed run leaves the watermark untouched, so a retry re-diffs and
      skips what was already saved (at-least-once, resumed by re-diff)
    - At most one run per replication id is in flight in this process

How to change safely:
    - Keep the diff before any save; it is what makes retries safe
    - Keep the log write last
    - Test failure injection at every step for context restoration
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Protocol, runtime_checkable

from ..changes import ChangeLog, SequenceIndex
from ..errors import ReplicationConflictError
from ..storage import EntityRevision, Workspace
from ..upstream import WORKSPACE_PLUGIN, Upstream, parse_upstream_id
from ..workspace import WorkspaceManager
from .differ import RevisionDiffer, group_changes
from .replication_log import (
    HistoryEntry,
    ReplicationLog,
    ReplicationLogStore,
    format_timestamp,
    make_replication_id,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Replicator(Protocol):
    """Protocol for replication strategies selected by applicability."""

    def applies(self, source: Upstream, target: Upstream) -> bool:
        ...

    async def replicate(self, source: Upstream, target: Upstream) -> ReplicationLog:
        ...


@runtime_checkable
class EntityStore(Protocol):
    """Loads historical revisions and saves them into a workspace."""

    async def load_revision(self, entity_type_id: str, revision_id: int) -> EntityRevision:
        ...

    async def save_revision(self, workspace_id: str, entity: EntityRevision) -> int | None:
        ...


class DefaultReplicator:
    """Replicates content between two workspaces on the same site.

    Thread safety:
        Runs for different source/target pairs may interleave on the event
        loop; their source/target phases are serialized by the workspace
        manager. A second run for a pair already in flight fails fast with
        ReplicationConflictError.

    Example:
        >>> replicator = DefaultReplicator(manager, change_log, index, store, differ, logs)
        >>> live = Upstream("workspace:live")
        >>> stage = Upstream("workspace:stage")
        >>> if replicator.applies(live, stage):
        ...     log = await replicator.replicate(live, stage)
    """

    def __init__(
        self,
        workspace_manager: WorkspaceManager,
        change_log: ChangeLog,
        sequence_index: SequenceIndex,
        entity_store: EntityStore,
        differ: RevisionDiffer,
        log_store: ReplicationLogStore,
    ) -> None:
        self.workspace_manager = workspace_manager
        self.change_log = change_log
        self.sequence_index = sequence_index
        self.entity_store = entity_store
        self.differ = differ
        self.log_store = log_store
        self._locks: dict[str, asyncio.Lock] = {}

    def applies(self, source: Upstream, target: Upstream) -> bool:
        """Only workspace-to-workspace pairs, e.g. 'workspace:live'.

        Raises:
            InvalidIdentifierError: If either plugin id has no ':'
        """
        source_plugin, source_id = parse_upstream_id(source.plugin_id)
        target_plugin, target_id = parse_upstream_id(target.plugin_id)
        return (
            source_plugin == WORKSPACE_PLUGIN
            and target_plugin == WORKSPACE_PLUGIN
            and bool(source_id)
            and bool(target_id)
        )

    async def replicate(self, source: Upstream, target: Upstream) -> ReplicationLog:
        """Replicate missing revisions from source to target.

        Returns:
            The persisted replication log with this run at history[0]

        Raises:
            InvalidIdentifierError: If a plugin id is malformed
            WorkspaceNotFoundError: If a workspace does not resolve
            StorageError: If a load, save or index query fails
            ReplicationConflictError: If the pair is already replicating
        """
        _, source_id = parse_upstream_id(source.plugin_id)
        _, target_id = parse_upstream_id(target.plugin_id)
        source_ws = await self.workspace_manager.load(source_id)
        target_ws = await self.workspace_manager.load(target_id)

        replication_id = make_replication_id(source_ws.workspace_id, target_ws.workspace_id)
        start_time = format_timestamp()
        session_id = uuid.uuid4().hex

        lock = self._locks.setdefault(replication_id, asyncio.Lock())
        if lock.locked():
            raise ReplicationConflictError(
                f"Replication {source_id} -> {target_id} is already running",
                replication_id=replication_id,
            )

        log_extra = {
            "replication_id": replication_id,
            "source": source_id,
            "target": target_id,
            "session_id": session_id,
        }
        logger.info("Starting replication", extra=log_extra)

        try:
            async with lock:
                try:
                    replication_log = await self._run(
                        source_ws, target_ws, replication_id, start_time, session_id
                    )
                except Exception as e:
                    logger.error(f"Replication failed: {e}", extra=log_extra)
                    raise
        finally:
            if not lock.locked() and self._locks.get(replication_id) is lock:
                del self._locks[replication_id]

        entry = replication_log.history[0]
        logger.info(
            "Replication finished",
            extra={
                **log_extra,
                "recorded_seq": entry.recorded_seq,
                "docs_written": entry.docs_written,
            },
        )
        return replication_log

    async def _run(
        self,
        source_ws: Workspace,
        target_ws: Workspace,
        replication_id: str,
        start_time: str,
        session_id: str,
    ) -> ReplicationLog:
        source_id = source_ws.workspace_id
        target_id = target_ws.workspace_id

        replication_log = await self.log_store.load_or_create(replication_id, source_id, target_id)
        last_sequence_id = replication_log.last_sequence_id

        # Prior active workspace is restored when this block exits
        async with self.workspace_manager.activated(source_ws):
            changes = await self.change_log.get_changes(source_id, since=last_sequence_id)
            rev_diffs, duplicates = group_changes(changes)
            missing_checked = sum(len(revs) for revs in rev_diffs.values())

            missing = await self.differ.diff(rev_diffs, target_id)
            missing_found = sum(len(revs) for revs in missing.values())

            logger.debug(
                "Computed missing revisions",
                extra={
                    "replication_id": replication_id,
                    "since": last_sequence_id,
                    "changes": len(changes),
                    "duplicates": duplicates,
                    "missing_checked": missing_checked,
                    "missing_found": missing_found,
                },
            )

            entities: list[EntityRevision] = []
            for entity_type_id, revs in missing.items():
                for rev in revs:
                    entity = await self.entity_store.load_revision(entity_type_id, rev)
                    entity.is_default_revision = True
                    entities.append(entity)

            self.workspace_manager.set_active_workspace(target_ws)

            docs_written = 0
            for entity in entities:
                await self.entity_store.save_revision(target_id, entity)
                docs_written += 1

        recorded_seq = await self.sequence_index.get_last_sequence_id(source_id)
        replication_log.add_history(
            HistoryEntry(
                recorded_seq=max(recorded_seq, last_sequence_id),
                start_time=start_time,
                session_id=session_id,
                end_time=format_timestamp(),
                missing_checked=missing_checked,
                missing_found=missing_found,
                docs_read=len(entities),
                docs_written=docs_written,
            )
        )
        return await self.log_store.save(replication_log)
