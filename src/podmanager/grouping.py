"""
Compose project grouping for the Containers branch of the tree.

Containers started by compose carry the project name and file location in
their labels. This module turns a flat list of ContainerRecord into:
  - one "container" node per non-compose container, and
  - one "compose-group" node per project, owning its container nodes.

Duplicate suppression:
  The same container can be discovered more than once during one refresh
  cycle. Every emitted compose child is registered in a DedupLedger under
  ``compose-<project>-<id>``; a key that is already registered is dropped.
  The ledger is owned by the node cache and cleared with it.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .compose_paths import ComposePathStore
from .model import (
    COMPOSE_CONTAINER, COMPOSE_GROUP, CONTAINER, UNKNOWN_PROJECT,
    ContainerRecord, PodmanItem,
)

logger = logging.getLogger(__name__)


class DedupLedger:
    """Set of composite keys already emitted during the current cycle."""

    def __init__(self):
        self._keys: Set[str] = set()

    @staticmethod
    def key_for(project: str, container_id: str) -> str:
        return f"compose-{project}-{container_id}"

    def register(self, key: str) -> bool:
        """Add ``key``; returns False if it was already present."""
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


def container_node(record: ContainerRecord) -> PodmanItem:
    return PodmanItem(
        label=f"{record.name} ({record.id})",
        context_value=CONTAINER,
        id=record.id,
        status=record.status,
        is_running=record.is_running,
    )


class ComposeGrouper:
    def __init__(self, ledger: DedupLedger, path_store: Optional[ComposePathStore] = None):
        self.ledger = ledger
        self.path_store = path_store

    def group(self, records: Iterable[ContainerRecord]) -> Tuple[List[PodmanItem], List[PodmanItem]]:
        """Split ``records`` into passthrough container nodes and compose group nodes."""
        passthrough: List[PodmanItem] = []
        buckets: Dict[str, List[ContainerRecord]] = {}

        for record in records:
            if record.is_compose:
                # dicts keep insertion order, so buckets follow first encounter
                buckets.setdefault(record.compose_project or UNKNOWN_PROJECT, []).append(record)
            elif record.id:
                passthrough.append(container_node(record))

        groups = [self._group_node(project, members) for project, members in buckets.items()]
        return passthrough, groups

    def _resolve_compose_file(self, project: str, members: List[ContainerRecord]) -> str:
        compose_file = next((r.compose_file for r in members if r.compose_file), "")
        if self.path_store is None:
            return compose_file
        if compose_file:
            self.path_store.store(project, compose_file)
            return compose_file
        return self.path_store.get(project) or ""

    def _group_node(self, project: str, members: List[ContainerRecord]) -> PodmanItem:
        children = []
        for record in members:
            key = DedupLedger.key_for(project, record.id)
            if not self.ledger.register(key):
                continue
            children.append(PodmanItem(
                label=f"{record.name} ({record.id})",
                context_value=COMPOSE_CONTAINER,
                id=record.id,
                status=record.status,
                is_running=record.is_running,
                compose_project=project,
            ))

        dropped = len(members) - len(children)
        if dropped:
            logger.debug(f"Suppressed {dropped} duplicate container(s) in compose project {project}")

        return PodmanItem(
            label=project,
            context_value=COMPOSE_GROUP,
            id=f"compose-group-{project}",
            compose_project=project,
            children=children,
            fs_path=self._resolve_compose_file(project, members),
            collapsible=True,
        )


def build_container_nodes(
    records: Iterable[ContainerRecord],
    ledger: DedupLedger,
    path_store: Optional[ComposePathStore] = None,
) -> List[PodmanItem]:
    """Container branch children: non-compose containers first, then compose groups."""
    passthrough, groups = ComposeGrouper(ledger, path_store).group(records)
    return passthrough + groups
