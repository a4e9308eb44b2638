"""
Workspace replication service wiring.

This module assembles the replication engine from configuration:
- Site store (SQLite)
- Workspace manager
- Sequence index and change log
- Revision differ and replication log store
- Default replicator behind the replication manager

Both the HTTP API and the CLI drive the engine through ReplicationService.

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The site database is initialized before any replication runs
    - Every workspace gets a registered "workspace:<id>" upstream
"""

from __future__ import annotations

import logging

import json_log_formatter

from .changes import ChangeLog, SequenceIndex
from .config import ServiceConfig
from .replication import (
    DefaultReplicator,
    ReplicationLog,
    ReplicationLogStore,
    ReplicationManager,
    RevisionDiffer,
    make_replication_id,
)
from .storage import SiteStore, Workspace
from .upstream import Upstream, UpstreamRegistry, parse_upstream_id
from .workspace import WorkspaceManager

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Service configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class ReplicationService:
    """Replication engine orchestrator.

    Attributes:
        config: Service configuration
        store: Site SQLite store
        workspace_manager: Workspace resolver and active context
        upstreams: Registered upstream descriptors
        replication_manager: Dispatcher over registered replicators

    Example:
        >>> service = ReplicationService(config)
        >>> await service.start()
        >>> await service.create_workspace("stage")
        >>> log = await service.replicate("workspace:live", "workspace:stage")
    """

    def __init__(self, config: ServiceConfig | None = None) -> None:
        """Initialize the service.

        Args:
            config: Optional configuration (loaded from env if not provided)
        """
        self.config = config or ServiceConfig.from_env()

        storage = self.config.storage
        self.store = SiteStore(
            data_dir=storage.data_dir,
            db_name=storage.db_name,
            wal_mode=storage.wal_mode,
            busy_timeout_ms=storage.busy_timeout_ms,
            cache_size_pages=storage.cache_size_pages,
        )
        self.workspace_manager = WorkspaceManager(
            self.store, default_workspace_id=self.config.replication.default_workspace
        )
        self.sequence_index = SequenceIndex(self.store)
        self.change_log = ChangeLog(self.sequence_index)
        self.log_store = ReplicationLogStore(
            self.store, history_limit=self.config.replication.history_limit
        )
        self.replicator = DefaultReplicator(
            workspace_manager=self.workspace_manager,
            change_log=self.change_log,
            sequence_index=self.sequence_index,
            entity_store=self.store,
            differ=RevisionDiffer(self.store),
            log_store=self.log_store,
        )
        self.replication_manager = ReplicationManager([self.replicator])
        self.upstreams = UpstreamRegistry()
        self._started = False

    async def start(self) -> None:
        """Initialize storage and register workspace upstreams."""
        if self._started:
            logger.warning("Replication service already started")
            return

        self.config.log_config()
        await self.store.initialize()
        self.upstreams.register_workspaces(await self.store.list_workspaces())
        self._started = True
        logger.info("Replication service started", extra={"upstreams": len(self.upstreams)})

    async def create_workspace(self, workspace_id: str, label: str | None = None) -> Workspace:
        """Create a workspace and register its upstream."""
        workspace = await self.store.create_workspace(workspace_id, label=label)
        self.upstreams.register(Upstream.for_workspace(workspace))
        return workspace

    async def list_workspaces(self) -> list[Workspace]:
        return await self.store.list_workspaces()

    async def replicate(self, source_id: str, target_id: str) -> ReplicationLog:
        """Replicate between two upstream plugin ids.

        Args:
            source_id: Source plugin id, e.g. "workspace:live"
            target_id: Target plugin id, e.g. "workspace:stage"

        Returns:
            The persisted replication log
        """
        source = self.upstreams.get_or_describe(source_id)
        target = self.upstreams.get_or_describe(target_id)
        return await self.replication_manager.replicate(source, target)

    async def get_log(self, replication_id: str) -> ReplicationLog:
        """Load a stored replication log by id."""
        return await self.log_store.load(replication_id)

    async def get_log_for(self, source_id: str, target_id: str) -> ReplicationLog:
        """Load the stored replication log of a source/target plugin id pair."""
        _, source_instance = parse_upstream_id(source_id)
        _, target_instance = parse_upstream_id(target_id)
        return await self.log_store.load(make_replication_id(source_instance, target_instance))

    async def list_logs(self) -> list[ReplicationLog]:
        return await self.log_store.list_logs()
