"""
Replication manager: selects a replicator by applicability.

Several replication strategies can be registered; for each source/target
pair the first one whose applies() accepts the pair runs it.
"""

from __future__ import annotations

import logging

from ..errors import NoApplicableReplicatorError
from ..upstream import Upstream
from .replication_log import ReplicationLog
from .replicator import Replicator

logger = logging.getLogger(__name__)


class ReplicationManager:
    """Dispatches replication to the first applicable replicator."""

    def __init__(self, replicators: list[Replicator] | None = None) -> None:
        self._replicators: list[Replicator] = list(replicators or [])

    def add_replicator(self, replicator: Replicator) -> None:
        self._replicators.append(replicator)

    def applicable(self, source: Upstream, target: Upstream) -> Replicator | None:
        """First replicator that applies to the pair, or None.

        Raises:
            InvalidIdentifierError: If a plugin id is malformed
        """
        for replicator in self._replicators:
            if replicator.applies(source, target):
                return replicator
        return None

    async def replicate(self, source: Upstream, target: Upstream) -> ReplicationLog:
        """Run replication with the first applicable replicator.

        Raises:
            NoApplicableReplicatorError: If no replicator accepts the pair
        """
        replicator = self.applicable(source, target)
        if replicator is None:
            raise NoApplicableReplicatorError(source.plugin_id, target.plugin_id)

        logger.debug(
            "Dispatching replication",
            extra={
                "source": source.plugin_id,
                "target": target.plugin_id,
                "replicator": type(replicator).__name__,
            },
        )
        return await replicator.replicate(source, target)
