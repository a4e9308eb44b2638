"""
Sequence index for workspace replication.

Every time a revision becomes current in a workspace, the workspace's
sequence index gets a new entry. Sequence ids are the watermark used to
ask for "changes since X".

Invariants:
    - Sequence ids are strictly increasing per workspace and never reused
    - The first entry of a workspace has sequence id 1; 0 means "nothing"
"""

from __future__ import annotations

import logging

from ..storage import Change, SiteStore

logger = logging.getLogger(__name__)


class SequenceIndex:
    """Append-only per-workspace sequence log.

    Example:
        >>> index = SequenceIndex(store)
        >>> seq = await index.add("live", "node", entity_id, revision_id)
        >>> await index.get_last_sequence_id("live") == seq
        True
    """

    def __init__(self, store: SiteStore) -> None:
        self.store = store

    async def add(
        self,
        workspace_id: str,
        entity_type_id: str,
        entity_id: str,
        revision_id: int,
    ) -> int:
        """Record that a revision became current in a workspace.

        Returns:
            The allocated sequence id
        """
        sequence_id = await self.store.append_sequence(
            workspace_id, entity_type_id, entity_id, revision_id
        )
        logger.debug(
            "Sequence recorded",
            extra={"workspace_id": workspace_id, "sequence_id": sequence_id},
        )
        return sequence_id

    async def get_last_sequence_id(self, workspace_id: str) -> int:
        """Latest sequence id of a workspace, or 0 if it has none."""
        return await self.store.get_last_sequence_id(workspace_id)

    async def get_range(
        self,
        workspace_id: str,
        start: int,
        stop: int | None = None,
        limit: int | None = None,
    ) -> list[Change]:
        """Entries with start <= sequence_id (<= stop), ascending."""
        return await self.store.get_sequences(workspace_id, start, stop=stop, limit=limit)
