"""
Upstream descriptors for workspace replication.

An upstream is anything content can be replicated from or to. Each one is
identified by a plugin id of the form "<plugin-kind>:<instance-id>", for
example "workspace:live". Replicators decide from these ids whether they
can handle a source/target pair.

Invariants:
    - Plugin ids are split on the first ':' only
    - A plugin id without ':' is a caller error (InvalidIdentifierError),
      never silently "not applicable"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import InvalidIdentifierError, UpstreamNotFoundError
from .storage import Workspace

logger = logging.getLogger(__name__)

WORKSPACE_PLUGIN = "workspace"


def parse_upstream_id(plugin_id: str) -> tuple[str, str]:
    """Split a plugin id into (plugin_kind, instance_id).

    Args:
        plugin_id: Identifier like "workspace:live"

    Returns:
        Tuple of (plugin_kind, instance_id); instance_id may be empty

    Raises:
        InvalidIdentifierError: If the separator is missing
    """
    if not isinstance(plugin_id, str) or ":" not in plugin_id:
        raise InvalidIdentifierError(
            f"Malformed upstream id {plugin_id!r}: expected '<plugin-kind>:<instance-id>'",
            identifier=plugin_id,
        )
    kind, _, instance_id = plugin_id.partition(":")
    return kind, instance_id


@dataclass(frozen=True)
class Upstream:
    """A replication endpoint.

    Attributes:
        plugin_id: Identifier like "workspace:live"
        label: Human-readable name
        description: Short description
        category: Human-readable category
        remote: Whether the upstream lives on another site
    """

    plugin_id: str
    label: str = ""
    description: str = ""
    category: str = ""
    remote: bool = False

    @property
    def plugin_kind(self) -> str:
        return parse_upstream_id(self.plugin_id)[0]

    @property
    def instance_id(self) -> str:
        return parse_upstream_id(self.plugin_id)[1]

    @classmethod
    def for_workspace(cls, workspace: Workspace) -> Upstream:
        """Build the local upstream for a workspace."""
        return cls(
            plugin_id=f"{WORKSPACE_PLUGIN}:{workspace.workspace_id}",
            label=workspace.label,
            description=f"Workspace {workspace.label}",
            category="Workspace",
            remote=False,
        )


class UpstreamRegistry:
    """Maps plugin ids to Upstream descriptors.

    Example:
        >>> registry = UpstreamRegistry()
        >>> registry.register(Upstream("workspace:live", label="Live"))
        >>> registry.get("workspace:live").label
        'Live'
    """

    def __init__(self) -> None:
        self._upstreams: dict[str, Upstream] = {}

    def register(self, upstream: Upstream) -> None:
        # Validates the id format up front
        parse_upstream_id(upstream.plugin_id)
        self._upstreams[upstream.plugin_id] = upstream

    def register_workspaces(self, workspaces: list[Workspace]) -> None:
        """Register a local upstream for each workspace."""
        for workspace in workspaces:
            self.register(Upstream.for_workspace(workspace))

    def get(self, plugin_id: str) -> Upstream:
        """Look up an upstream.

        Raises:
            InvalidIdentifierError: If the plugin id is malformed
            UpstreamNotFoundError: If nothing is registered under it
        """
        parse_upstream_id(plugin_id)
        upstream = self._upstreams.get(plugin_id)
        if upstream is None:
            raise UpstreamNotFoundError(plugin_id)
        return upstream

    def get_or_describe(self, plugin_id: str) -> Upstream:
        """Registered upstream, or a bare descriptor for an unregistered id."""
        parse_upstream_id(plugin_id)
        if plugin_id in self:
            return self._upstreams[plugin_id]
        logger.debug("Using unregistered upstream", extra={"plugin_id": plugin_id})
        return Upstream(plugin_id=plugin_id)

    def all(self) -> list[Upstream]:
        return sorted(self._upstreams.values(), key=lambda u: u.plugin_id)

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self._upstreams

    def __len__(self) -> int:
        return len(self._upstreams)
