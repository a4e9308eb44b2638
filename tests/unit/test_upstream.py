"""
Unit tests for upstream ids, the upstream registry and replicator dispatch.
"""

import pytest

from dbaas.wsrepl_server.errors import (
    InvalidIdentifierError,
    NoApplicableReplicatorError,
    UpstreamNotFoundError,
)
from dbaas.wsrepl_server.replication import ReplicationManager
from dbaas.wsrepl_server.storage import Workspace
from dbaas.wsrepl_server.upstream import Upstream, UpstreamRegistry, parse_upstream_id


class TestParseUpstreamId:
    """Tests for parse_upstream_id."""

    def test_simple(self):
        assert parse_upstream_id("workspace:live") == ("workspace", "live")

    def test_splits_on_first_separator(self):
        assert parse_upstream_id("remote:http://example.com") == ("remote", "http://example.com")

    def test_empty_instance(self):
        assert parse_upstream_id("workspace:") == ("workspace", "")

    @pytest.mark.parametrize("bad_id", ["workspace", "", None])
    def test_missing_separator(self, bad_id):
        with pytest.raises(InvalidIdentifierError):
            parse_upstream_id(bad_id)


class TestUpstream:
    def test_for_workspace(self):
        upstream = Upstream.for_workspace(Workspace("stage", "Stage", 0))

        assert upstream.plugin_id == "workspace:stage"
        assert upstream.label == "Stage"
        assert upstream.plugin_kind == "workspace"
        assert upstream.instance_id == "stage"
        assert upstream.remote is False


class TestUpstreamRegistry:
    """Tests for UpstreamRegistry."""

    def test_register_and_get(self):
        registry = UpstreamRegistry()
        registry.register(Upstream("workspace:live", label="Live"))

        assert registry.get("workspace:live").label == "Live"
        assert "workspace:live" in registry
        assert len(registry) == 1

    def test_register_rejects_malformed_id(self):
        registry = UpstreamRegistry()

        with pytest.raises(InvalidIdentifierError):
            registry.register(Upstream("live"))

    def test_get_unknown(self):
        registry = UpstreamRegistry()

        with pytest.raises(UpstreamNotFoundError):
            registry.get("workspace:nope")

    def test_get_or_describe_unregistered(self):
        registry = UpstreamRegistry()

        upstream = registry.get_or_describe("workspace:stage")

        assert upstream == Upstream("workspace:stage")
        assert "workspace:stage" not in registry

    def test_get_or_describe_registered(self):
        registry = UpstreamRegistry()
        registry.register(Upstream("workspace:live", label="Live"))

        assert registry.get_or_describe("workspace:live").label == "Live"

    def test_get_or_describe_malformed(self):
        registry = UpstreamRegistry()

        with pytest.raises(InvalidIdentifierError):
            registry.get_or_describe("stage")

    def test_register_workspaces_sorted(self):
        registry = UpstreamRegistry()
        registry.register_workspaces([Workspace("stage", "Stage", 0), Workspace("live", "Live", 0)])

        assert [u.plugin_id for u in registry.all()] == ["workspace:live", "workspace:stage"]


class StaticReplicator:
    """Replicator stub that applies to one plugin kind."""

    def __init__(self, kind):
        self.kind = kind
        self.calls = []

    def applies(self, source, target):
        return source.plugin_kind == self.kind and target.plugin_kind == self.kind

    async def replicate(self, source, target):
        self.calls.append((source.plugin_id, target.plugin_id))
        return self.kind


class TestReplicationManager:
    """Tests for ReplicationManager."""

    def test_applicable_picks_first_match(self):
        first = StaticReplicator("workspace")
        second = StaticReplicator("workspace")
        manager = ReplicationManager([first, second])

        assert manager.applicable(Upstream("workspace:a"), Upstream("workspace:b")) is first

    def test_applicable_none(self):
        manager = ReplicationManager([StaticReplicator("workspace")])

        assert manager.applicable(Upstream("remote:a"), Upstream("workspace:b")) is None

    @pytest.mark.asyncio
    async def test_replicate_dispatches(self):
        remote = StaticReplicator("remote")
        manager = ReplicationManager([StaticReplicator("workspace")])
        manager.add_replicator(remote)

        result = await manager.replicate(Upstream("remote:a"), Upstream("remote:b"))

        assert result == "remote"
        assert remote.calls == [("remote:a", "remote:b")]

    @pytest.mark.asyncio
    async def test_replicate_without_replicator(self):
        manager = ReplicationManager()

        with pytest.raises(NoApplicableReplicatorError) as exc_info:
            await manager.replicate(Upstream("workspace:a"), Upstream("workspace:b"))

        assert exc_info.value.details == {"source": "workspace:a", "target": "workspace:b"}

