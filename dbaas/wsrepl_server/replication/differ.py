"""
Revision diff for workspace replication.

Given candidate (entity type, revision id) pairs from the source's change
log, the differ removes every revision the target already holds. What is
left is the set of revisions that actually have to be transferred.

The diff is what makes replication resumable: revisions saved by an
interrupted run are found present on the next run and skipped.

Invariants:
    - The diff only removes candidates, never adds them
    - Presence covers all revisions a workspace holds, not only current ones
    - Order within an entity type follows change-log emission order
    - Entity types left with no missing revisions are dropped
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from ..storage import Change

logger = logging.getLogger(__name__)

RevisionDiffSet = dict[str, list[int]]


@runtime_checkable
class RevisionPresenceIndex(Protocol):
    """Answers which revisions a workspace already holds."""

    async def get_present_revision_ids(
        self,
        entity_type_id: str,
        workspace_id: str,
        candidate_ids: Iterable[int],
    ) -> set[int]:
        ...


def group_changes(changes: Iterable[Change]) -> tuple[RevisionDiffSet, int]:
    """Group changes into entity type -> revision ids.

    A revision referenced by several changes is kept once, at its first
    position.

    Returns:
        Tuple of (candidate map, number of duplicate references dropped)
    """
    rev_diffs: RevisionDiffSet = {}
    seen: set[tuple[str, int]] = set()
    duplicates = 0

    for change in changes:
        key = (change.entity_type_id, change.revision_id)
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        rev_diffs.setdefault(change.entity_type_id, []).append(change.revision_id)

    return rev_diffs, duplicates


class RevisionDiffer:
    """Computes the missing revision set against a target workspace."""

    def __init__(self, presence_index: RevisionPresenceIndex) -> None:
        self.presence_index = presence_index

    async def diff(self, rev_diffs: RevisionDiffSet, target_workspace_id: str) -> RevisionDiffSet:
        """Remove revisions already present in the target.

        Args:
            rev_diffs: Candidate map (not modified)
            target_workspace_id: Workspace to diff against

        Returns:
            New map holding only the missing revisions
        """
        missing: RevisionDiffSet = {}

        for entity_type_id, revs in rev_diffs.items():
            if not revs:
                continue

            present = await self.presence_index.get_present_revision_ids(
                entity_type_id, target_workspace_id, revs
            )
            remaining = [rev for rev in revs if rev not in present]

            logger.debug(
                "Revision diff",
                extra={
                    "entity_type_id": entity_type_id,
                    "target": target_workspace_id,
                    "candidates": len(revs),
                    "present": len(present),
                    "missing": len(remaining),
                },
            )

            if remaining:
                missing[entity_type_id] = remaining

        return missing
