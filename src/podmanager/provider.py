"""
Tree data provider for the podmanager resource view.

The provider answers three questions for the UI:
  - get_root_items(): the fixed category nodes
  - get_children(parent): child nodes of a category, pod, image or compose group
  - refresh(): invalidate everything and tell listeners to re-query

Caching:
  Children are cached per parent ("<context>-<id>") in a NodeCache until the
  next refresh. Only RefreshController clears the cache; only get_children
  populates it. A cleared parent is always recomputed from a fresh engine
  listing. Concurrent misses for one key share a single in-flight fetch, and
  a result computed before a clear is discarded and recomputed.

Refresh state machine (RefreshController):
  IDLE --request--> PENDING (timer started)
  PENDING --request--> PENDING (timer restarted)
  PENDING --timer fires--> IDLE (cache + ledgers cleared, change event fired)

Everything runs on one asyncio event loop; the debounce timer is a
``loop.call_later`` handle.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from .backend import PodmanBackend, engine_safe
from .cache import NodeCache
from .compose_paths import ComposePathStore
from .config import ConfigManager, config_manager
from .grouping import DedupLedger, build_container_nodes
from .model import (
    CATEGORIES, COMPOSE_GROUP, CONTAINER, CONTAINERS, IMAGE, IMAGE_TAG, IMAGES,
    NETWORK, NETWORKS, OVERVIEW, OVERVIEW_ITEM, POD, PODS, VOLUME, VOLUMES,
    PodmanItem, category_item,
)
from .status import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)

IDLE = "idle"
PENDING = "pending"


class ChangeEvent:
    """Payload-less event; ``subscribe`` returns an unsubscribe callable."""

    def __init__(self):
        self._listeners: List[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def fire(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Tree change listener failed: {e}", exc_info=True)


class RefreshController:
    """Debounces refresh requests into one cache clear plus one notification."""

    def __init__(
        self,
        cache: NodeCache,
        event: ChangeEvent,
        delay: float = 0.3,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.cache = cache
        self.event = event
        self.delay = delay
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> str:
        return PENDING if self._handle is not None else IDLE

    def request(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.debug(f"Tree refresh fired, cache before clear: {self.cache.get_stats()}")
        self.cache.clear()
        self.event.fire()


class PodmanTreeDataProvider:
    def __init__(
        self,
        backend: Optional[PodmanBackend] = None,
        notifier: Optional[Notifier] = None,
        path_store: Optional[ComposePathStore] = None,
        config: Optional[ConfigManager] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.config = config or config_manager
        self.backend = backend or PodmanBackend(self.config)
        self.notifier = notifier or LoggingNotifier()
        self.path_store = path_store
        self.cache = NodeCache(self.config.get_dedup_scope())
        self.on_did_change = ChangeEvent()
        self.refresher = RefreshController(
            self.cache, self.on_did_change, self.config.get_refresh_delay(), loop
        )
        self.overview_data = ""

    def refresh(self) -> None:
        self.refresher.request()

    async def refresh_overview(self) -> None:
        try:
            self.overview_data = await self.backend.system_df()
        except Exception as e:
            logger.error(f"Failed to fetch system overview: {e}", exc_info=True)
            self.notifier.error(
                f"Failed to fetch Podman system overview: {e}",
                self.backend.command_text(["system", "df"]),
            )
            return
        self.refresh()

    def get_root_items(self) -> List[PodmanItem]:
        return [category_item(label, context) for label, context in CATEGORIES]

    async def get_children(self, element: Optional[PodmanItem] = None) -> List[PodmanItem]:
        if element is None:
            return self.get_root_items()

        cache_key = element.cache_key
        while True:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

            running = self.cache.inflight(cache_key)
            if running is not None:
                # shield: one waiter going away must not cancel the shared fetch
                children, generation = await asyncio.shield(running)
            else:
                generation = self.cache.generation
                task = asyncio.ensure_future(self._compute_children(element, generation))
                self.cache.track(cache_key, generation, task)
                try:
                    children, generation = await asyncio.shield(task)
                finally:
                    self.cache.untrack(cache_key, task)
                if not self.cache.set(cache_key, children, generation):
                    logger.debug(f"Dropping children of {cache_key} computed before a refresh")
                    continue

            if generation == self.cache.generation:
                return children

    async def _compute_children(self, element: PodmanItem, generation: int):
        """Children of ``element`` plus the cache generation they were computed in."""
        if generation != self.cache.generation:
            # cleared before this task started; leave the new cycle's ledgers alone
            return [], generation
        cache_key = element.cache_key
        context = element.context_value
        if context == CONTAINERS:
            children = await self._fetch_containers(cache_key)
        elif context == PODS:
            children = await self._fetch_pods()
        elif context == IMAGES:
            children = await self._fetch_images()
        elif context == VOLUMES:
            children = await self._fetch_volumes()
        elif context == NETWORKS:
            children = await self._fetch_networks()
        elif context == OVERVIEW:
            children = self._overview_items()
        elif context == POD:
            children = await self._fetch_pod_containers(cache_key, element.id or "")
        elif context in (COMPOSE_GROUP, IMAGE):
            children = list(element.children or [])
        else:
            children = []
        return children, generation

    @engine_safe(default_return=[], what="containers")
    async def _fetch_containers(self, cache_key: str) -> List[PodmanItem]:
        # the ledger belongs to the generation the fetch started in
        ledger = self.cache.ledger_for(cache_key)
        records = await self.backend.list_containers()
        return build_container_nodes(records, ledger, self.path_store)

    @engine_safe(default_return=[], what="pods")
    async def _fetch_pods(self) -> List[PodmanItem]:
        pods = await self.backend.list_pods()
        return [
            PodmanItem(
                label=f"{p.name} ({p.id})",
                context_value=POD,
                id=p.id,
                status=p.status,
                resource_name=p.name,
                collapsible=True,
            )
            for p in pods if p.id
        ]

    @engine_safe(default_return=[], what="pod containers")
    async def _fetch_pod_containers(self, cache_key: str, pod: str) -> List[PodmanItem]:
        ledger = self.cache.ledger_for(cache_key)
        records = await self.backend.list_pod_containers(pod)
        items = []
        for r in records:
            if not r.id:
                continue
            # compose members share the ledger with the Containers listing
            if r.compose_project and not ledger.register(DedupLedger.key_for(r.compose_project, r.id)):
                logger.debug(f"Container {r.id} of pod {pod} already listed in {r.compose_project}")
                continue
            items.append(PodmanItem(
                label=f"{r.name} ({r.id})",
                context_value=CONTAINER,
                id=r.id,
                status=f"Status: {r.status}\nCreated: {r.created}",
                is_running=r.is_running,
                compose_project=r.compose_project or None,
            ))
        return items

    @engine_safe(default_return=[], what="images")
    async def _fetch_images(self) -> List[PodmanItem]:
        images = await self.backend.list_images()
        used_ids = await self.backend.list_used_image_ids()

        tags_by_id: Dict[str, List[str]] = {}
        for image in images:
            if image.repository == "<none>" or image.tag == "<none>":
                continue
            tags_by_id.setdefault(image.id, []).append(f"{image.repository}:{image.tag}")

        items = []
        for image_id, names in tags_by_id.items():
            is_used = _image_in_use(image_id, used_ids)
            label = f"{image_id} ({len(names)} tags)" if len(names) > 1 else f"{names[0]} ({image_id})"
            children = [
                PodmanItem(
                    label=name,
                    context_value=IMAGE_TAG,
                    id=f"{image_id}-tag-{index}",
                    status=image_id,
                    is_used=is_used,
                    resource_name=name,
                )
                for index, name in enumerate(names)
            ]
            items.append(PodmanItem(
                label=label,
                context_value=IMAGE,
                id=image_id,
                status=image_id,
                children=children,
                is_used=is_used,
                collapsible=len(names) > 1,
            ))
        return items

    @engine_safe(default_return=[], what="volumes")
    async def _fetch_volumes(self) -> List[PodmanItem]:
        volumes = await self.backend.list_volumes()
        return [
            PodmanItem(
                label=f"{v.name} ({v.driver})",
                context_value=VOLUME,
                id=f"volume-{v.name}",
                resource_name=v.name,
            )
            for v in volumes if v.name
        ]

    @engine_safe(default_return=[], what="networks")
    async def _fetch_networks(self) -> List[PodmanItem]:
        networks = await self.backend.list_networks()
        return [
            PodmanItem(
                label=f"{n.name} ({n.driver})",
                context_value=NETWORK,
                id=f"network-{n.name}",
                resource_name=n.name,
            )
            for n in networks if n.name
        ]

    def _overview_items(self) -> List[PodmanItem]:
        return [
            PodmanItem(label=line, context_value=OVERVIEW_ITEM)
            for line in self.overview_data.splitlines() if line.strip()
        ]


def _image_in_use(image_id: str, used_ids) -> bool:
    # image ls prints short ids, container ls may print full ones
    return any(u.startswith(image_id) or image_id.startswith(u) for u in used_ids if u)
