"""
Change log for workspace replication.

Produces, for a workspace and a starting sequence id, the ordered changes
recorded strictly after that point. This is the equivalent of a CouchDB
_changes feed restricted to one workspace.

Invariants:
    - Changes are returned in ascending sequence order
    - The result is finite; changes recorded after the query are not seen
    - Changes are not de-duplicated here; one revision can appear in
      several changes
"""

from __future__ import annotations

from .sequence_index import SequenceIndex
from ..storage import Change


class ChangeLog:
    """Reads changes from the sequence index."""

    def __init__(self, sequence_index: SequenceIndex) -> None:
        self.sequence_index = sequence_index

    async def get_changes(
        self,
        workspace_id: str,
        since: int = 0,
        limit: int | None = None,
    ) -> list[Change]:
        """Get changes recorded after a sequence id.

        Args:
            workspace_id: Workspace to read
            since: Exclusive lower bound (0 = from the beginning)
            limit: Maximum number of changes to return

        Returns:
            Changes with sequence_id > since, ascending
        """
        if since < 0:
            raise ValueError(f"since must be >= 0, got {since}")
        return await self.sequence_index.get_range(workspace_id, since + 1, limit=limit)

    def for_workspace(self, workspace_id: str) -> ChangesQuery:
        """Start a fluent changes query for a workspace."""
        return ChangesQuery(self, workspace_id)


class ChangesQuery:
    """Fluent form of ChangeLog.get_changes().

    Example:
        >>> changes = await change_log.for_workspace("live").set_last_sequence_id(2).get_changes()
    """

    def __init__(self, change_log: ChangeLog, workspace_id: str) -> None:
        self._change_log = change_log
        self._workspace_id = workspace_id
        self._since = 0
        self._limit: int | None = None

    def set_last_sequence_id(self, sequence_id: int) -> ChangesQuery:
        self._since = sequence_id
        return self

    def set_limit(self, limit: int | None) -> ChangesQuery:
        self._limit = limit
        return self

    async def get_changes(self) -> list[Change]:
        return await self._change_log.get_changes(
            self._workspace_id, since=self._since, limit=self._limit
        )
