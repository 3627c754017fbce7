"""
Data models for podmanager.

Two kinds of data flow through the application:
  - Records: immutable snapshots of one engine listing row (ContainerRecord,
    PodRecord, ImageRecord, ...). Rebuilt on every fetch and discarded after
    they are turned into tree nodes.
  - Tree nodes: PodmanItem instances handed to the UI. Compose groups are
    PodmanItems with context "compose-group" that own their children.

Row parsing returns a tagged result (ParseOk / ParseDegraded) so the caller
can tell a complete row from one whose missing fields were defaulted.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union, Any

UNKNOWN_PROJECT = "Unknown Project"

# Category contexts, in root display order
CONTAINERS = "containers"
PODS = "pods"
IMAGES = "images"
VOLUMES = "volumes"
NETWORKS = "networks"
OVERVIEW = "overview"

CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("Containers", CONTAINERS),
    ("Pods", PODS),
    ("Images", IMAGES),
    ("Volumes", VOLUMES),
    ("Networks", NETWORKS),
    ("Overview", OVERVIEW),
)

# Leaf and group contexts
CONTAINER = "container"
COMPOSE_CONTAINER = "compose-container"
COMPOSE_GROUP = "compose-group"
POD = "pod"
IMAGE = "image"
IMAGE_TAG = "image-tag"
VOLUME = "volume"
NETWORK = "network"
OVERVIEW_ITEM = "overview-item"


@dataclass(frozen=True)
class ContainerRecord:
    id: str
    name: str
    status: str
    is_running: bool = False
    is_compose: bool = False
    compose_project: str = ""
    compose_file: str = ""


@dataclass(frozen=True)
class PodContainerRecord:
    id: str
    name: str
    status: str
    created: str
    compose_project: str = ""

    @property
    def is_running(self) -> bool:
        return "up" in self.status.lower()


@dataclass(frozen=True)
class PodRecord:
    id: str
    name: str
    status: str


@dataclass(frozen=True)
class ImageRecord:
    id: str
    repository: str
    tag: str


@dataclass(frozen=True)
class VolumeRecord:
    name: str
    driver: str


@dataclass(frozen=True)
class NetworkRecord:
    name: str
    driver: str


@dataclass(frozen=True)
class ParseOk:
    record: Any

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class ParseDegraded:
    record: Any
    defaulted: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return True


ParseResult = Union[ParseOk, ParseDegraded]


@dataclass
class PodmanItem:
    """A node of the resource tree."""
    label: str
    context_value: str
    id: Optional[str] = None
    status: Optional[str] = None
    is_running: Optional[bool] = None
    compose_project: Optional[str] = None
    children: Optional[List["PodmanItem"]] = None
    is_used: Optional[bool] = None
    resource_name: Optional[str] = None
    fs_path: Optional[str] = None
    collapsible: bool = False

    @property
    def cache_key(self) -> str:
        return f"{self.context_value}-{self.id}"

    @property
    def tooltip(self) -> Optional[str]:
        if self.context_value == POD:
            return f"ID: {self.id}\n{self.status}"
        if self.context_value in (CONTAINER, COMPOSE_CONTAINER):
            return f"ID: {self.id}\nStatus: {self.status}"
        if self.context_value == IMAGE:
            return f"ID: {self.id}\nUsed: {'Yes' if self.is_used else 'No'}"
        if self.context_value == IMAGE_TAG:
            return f"ID: {self.id}\nTag: {self.label}"
        if self.context_value == COMPOSE_GROUP:
            tip = f"Compose Project: {self.compose_project}"
            if self.fs_path:
                tip += f"\nFile: {self.fs_path}"
            return tip
        return None

    @property
    def icon(self) -> str:
        if self.context_value == POD:
            return "●" if "running" in (self.status or "").lower() else "○"
        if self.context_value in (CONTAINER, COMPOSE_CONTAINER):
            return "●" if self.is_running else "○"
        if self.context_value in (IMAGE, IMAGE_TAG):
            return "▣" if self.is_used else "□"
        if self.context_value == COMPOSE_GROUP:
            return "≡"
        return ""


def category_item(label: str, context: str) -> PodmanItem:
    return PodmanItem(label=label, context_value=context, id=context, collapsible=True)
