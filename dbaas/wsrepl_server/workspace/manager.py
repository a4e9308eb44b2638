"""
Workspace manager for workspace replication.

The manager resolves workspace ids to Workspace handles and owns the
process-wide active workspace: the workspace that entity operations
without an explicit workspace target.

Invariants:
    - At most one task holds the active workspace through activated();
      the holding task may nest activated() without blocking itself
    - activated() restores the prior value exactly once on every exit path,
      including errors and task cancellation
    - load() never returns None; unknown ids raise WorkspaceNotFoundError

How to change safely:
    - Storage calls take explicit workspace ids; do not make correctness
      depend on the active workspace
    - Keep activated() the only way long-running code swaps the context
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ..errors import WorkspaceNotFoundError
from ..storage import SiteStore, Workspace

logger = logging.getLogger(__name__)

# ids of the managers whose ownership the current task (or its parent) holds
_held_managers: contextvars.ContextVar[frozenset[int]] = contextvars.ContextVar(
    "held_workspace_managers", default=frozenset()
)


class WorkspaceManager:
    """Resolves workspaces and tracks the active one.

    Example:
        >>> manager = WorkspaceManager(store, default_workspace_id="live")
        >>> stage = await manager.load("stage")
        >>> async with manager.activated(stage):
        ...     ...  # stage is active here
        >>> # previous active workspace restored
    """

    def __init__(self, store: SiteStore, default_workspace_id: str = "live") -> None:
        """Initialize the workspace manager.

        Args:
            store: Site store used to resolve workspaces
            default_workspace_id: Workspace active when none was set
        """
        self.store = store
        self.default_workspace_id = default_workspace_id
        self._active: Workspace | None = None
        self._ownership = asyncio.Lock()

    async def load(self, workspace_id: str) -> Workspace:
        """Resolve a workspace id.

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist
        """
        workspace = await self.store.get_workspace(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        return workspace

    async def get_active_workspace(self, refresh: bool = False) -> Workspace:
        """Get the active workspace.

        Args:
            refresh: Reload the active workspace from storage

        Returns:
            The active workspace, falling back to the default workspace
        """
        if self._active is None or refresh:
            workspace_id = (
                self._active.workspace_id if self._active else self.default_workspace_id
            )
            self._active = await self.load(workspace_id)
        return self._active

    def set_active_workspace(self, workspace: Workspace | None) -> None:
        """Set the active workspace (None resets to the default)."""
        self._active = workspace
        logger.debug(
            "Active workspace changed",
            extra={"workspace_id": workspace.workspace_id if workspace else None},
        )

    @property
    def active_workspace_id(self) -> str | None:
        """Id of the workspace explicitly made active, if any."""
        return self._active.workspace_id if self._active else None

    @asynccontextmanager
    async def activated(self, workspace: Workspace) -> AsyncIterator[Workspace]:
        """Take ownership of the active workspace and switch it.

        The owner may switch again with set_active_workspace() inside the
        block, or nest activated() calls, also from tasks it awaits (e.g.
        through asyncio.wait_for); only the outermost block takes the
        ownership lock. On exit the value held before entry is restored.

        The prior value is captured as stored, not through
        get_active_workspace(): an unset context is restored as unset
        instead of being pinned to the default workspace.
        """
        held = _held_managers.get()
        if id(self) in held and self._ownership.locked():
            async with self._swapped(workspace):
                yield workspace
            return

        async with self._ownership:
            token = _held_managers.set(held | {id(self)})
            try:
                async with self._swapped(workspace):
                    yield workspace
            finally:
                _held_managers.reset(token)

    @asynccontextmanager
    async def _swapped(self, workspace: Workspace) -> AsyncIterator[None]:
        previous = self._active
        self.set_active_workspace(workspace)
        try:
            yield
        finally:
            self.set_active_workspace(previous)
