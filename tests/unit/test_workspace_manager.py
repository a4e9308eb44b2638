"""
Unit tests for the workspace manager.

Tests cover:
- Workspace resolution
- Default active workspace
- Restoration of the active workspace on every exit path
"""

import asyncio
import tempfile

import pytest

from dbaas.wsrepl_server.errors import WorkspaceNotFoundError
from dbaas.wsrepl_server.storage import SiteStore
from dbaas.wsrepl_server.workspace import WorkspaceManager


class TestWorkspaceManager:
    """Tests for WorkspaceManager."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    async def manager(self, data_dir):
        store = SiteStore(data_dir, wal_mode=False)
        await store.initialize()
        await store.create_workspace("live", label="Live")
        await store.create_workspace("stage", label="Stage")
        return WorkspaceManager(store, default_workspace_id="live")

    @pytest.mark.asyncio
    async def test_load(self, manager):
        workspace = await manager.load("stage")
        assert workspace.label == "Stage"

    @pytest.mark.asyncio
    async def test_load_unknown(self, manager):
        with pytest.raises(WorkspaceNotFoundError) as exc_info:
            await manager.load("nope")

        assert exc_info.value.workspace_id == "nope"

    @pytest.mark.asyncio
    async def test_default_active_workspace(self, manager):
        assert manager.active_workspace_id is None

        active = await manager.get_active_workspace()

        assert active.workspace_id == "live"

    @pytest.mark.asyncio
    async def test_set_active_workspace(self, manager):
        stage = await manager.load("stage")

        manager.set_active_workspace(stage)

        assert (await manager.get_active_workspace()).workspace_id == "stage"
        manager.set_active_workspace(None)
        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_activated_restores_previous(self, manager):
        live = await manager.load("live")
        stage = await manager.load("stage")
        manager.set_active_workspace(live)

        async with manager.activated(stage):
            assert manager.active_workspace_id == "stage"
            manager.set_active_workspace(live)

        assert manager.active_workspace_id == "live"

    @pytest.mark.asyncio
    async def test_activated_restores_unset(self, manager):
        stage = await manager.load("stage")

        async with manager.activated(stage):
            assert manager.active_workspace_id == "stage"

        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_activated_restores_on_error(self, manager):
        stage = await manager.load("stage")

        with pytest.raises(RuntimeError):
            async with manager.activated(stage):
                raise RuntimeError("boom")

        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_activated_restores_on_cancel(self, manager):
        stage = await manager.load("stage")
        entered = asyncio.Event()

        async def hold():
            async with manager.activated(stage):
                entered.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(hold())
        await entered.wait()
        assert manager.active_workspace_id == "stage"

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_activated_serializes_owners(self, manager):
        """A second owner waits until the first has restored the context."""
        live = await manager.load("live")
        stage = await manager.load("stage")
        order = []
        first_entered = asyncio.Event()

        async def first():
            async with manager.activated(stage):
                first_entered.set()
                order.append("first-in")
                await asyncio.sleep(0.01)
                order.append("first-out")

        async def second():
            await first_entered.wait()
            async with manager.activated(live):
                order.append("second-in")
                assert manager.active_workspace_id == "live"

        await asyncio.gather(first(), second())

        assert order == ["first-in", "first-out", "second-in"]
        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_nested_activation_by_owner(self, manager):
        """The owning task can re-enter activated() without blocking."""
        live = await manager.load("live")
        stage = await manager.load("stage")

        async def nested():
            async with manager.activated(live):
                async with manager.activated(stage):
                    assert manager.active_workspace_id == "stage"
                assert manager.active_workspace_id == "live"

        await asyncio.wait_for(nested(), timeout=2)

        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_nested_activation_in_awaited_child_task(self, manager):
        """A task spawned and awaited by the owner shares its ownership."""
        live = await manager.load("live")
        stage = await manager.load("stage")

        async def child():
            async with manager.activated(stage):
                return manager.active_workspace_id

        async with manager.activated(live):
            seen = await asyncio.wait_for(asyncio.create_task(child()), timeout=2)
            assert manager.active_workspace_id == "live"

        assert seen == "stage"
        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_nested_activation_restores_on_error(self, manager):
        live = await manager.load("live")
        stage = await manager.load("stage")

        async with manager.activated(live):
            with pytest.raises(RuntimeError):
                async with manager.activated(stage):
                    raise RuntimeError("boom")
            assert manager.active_workspace_id == "live"

        assert manager.active_workspace_id is None

    @pytest.mark.asyncio
    async def test_other_task_waits_for_nested_owner(self, manager):
        """Nesting does not let a different task skip the ownership lock."""
        live = await manager.load("live")
        stage = await manager.load("stage")
        release = asyncio.Event()
        entered = asyncio.Event()

        async def owner():
            async with manager.activated(live):
                async with manager.activated(stage):
                    entered.set()
                    await release.wait()

        async def other():
            async with manager.activated(live):
                return manager.active_workspace_id

        owner_task = asyncio.create_task(owner())
        await entered.wait()
        other_task = asyncio.create_task(other())
        await asyncio.sleep(0.01)

        assert not other_task.done()
        release.set()
        await owner_task

        assert await other_task == "live"
        assert manager.active_workspace_id is None
