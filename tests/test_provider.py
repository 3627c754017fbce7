import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from podmanager.backend import EngineError, PodmanBackend
from podmanager.model import (
    COMPOSE_GROUP, CONTAINER, IMAGE, IMAGE_TAG, OVERVIEW_ITEM, POD, ContainerRecord,
    ImageRecord, NetworkRecord, PodContainerRecord, PodRecord, VolumeRecord,
    category_item,
)
from podmanager.provider import (
    IDLE, PENDING, ChangeEvent, PodmanTreeDataProvider, RefreshController,
)
from podmanager.cache import NodeCache

CONTAINERS_ROOT = category_item("Containers", "containers")


@pytest.fixture
def provider(backend, notifier, path_store, config):
    return PodmanTreeDataProvider(backend, notifier, path_store, config)


def compose(cid, name, project):
    return ContainerRecord(
        id=cid, name=name, status="Up 2 minutes", is_running=True,
        is_compose=True, compose_project=project,
    )


def test_root_items_order(provider):
    roots = provider.get_root_items()
    assert [r.label for r in roots] == ["Containers", "Pods", "Images", "Volumes", "Networks", "Overview"]
    assert all(r.collapsible for r in roots)


def test_get_children_without_element_returns_roots(provider):
    children = asyncio.run(provider.get_children(None))
    assert [c.context_value for c in children] == [r.context_value for r in provider.get_root_items()]


def test_children_are_cached_until_refresh(provider, backend):
    backend.list_containers.return_value = [
        ContainerRecord(id="p1", name="solo", status="Up 1 second", is_running=True),
    ]

    async def scenario():
        first = await provider.get_children(CONTAINERS_ROOT)
        again = await provider.get_children(CONTAINERS_ROOT)
        assert again is first
        assert backend.list_containers.await_count == 1

        provider.refresh()
        await asyncio.sleep(0.1)

        fresh = await provider.get_children(CONTAINERS_ROOT)
        assert fresh is not first
        assert fresh == first
        assert backend.list_containers.await_count == 2

    asyncio.run(scenario())


def test_burst_of_refreshes_fires_once(provider, mocker):
    listener = MagicMock()
    provider.on_did_change.subscribe(listener)
    clear = mocker.spy(provider.cache, "clear")

    async def scenario():
        for _ in range(5):
            provider.refresh()
        assert provider.refresher.state == PENDING
        listener.assert_not_called()
        await asyncio.sleep(0.15)

    asyncio.run(scenario())

    listener.assert_called_once_with()
    assert clear.call_count == 1
    assert provider.refresher.state == IDLE


def test_refresh_controller_cancel():
    cache = NodeCache()
    event = ChangeEvent()
    listener = MagicMock()
    event.subscribe(listener)

    async def scenario():
        controller = RefreshController(cache, event, delay=0.01)
        controller.request()
        controller.cancel()
        assert controller.state == IDLE
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    listener.assert_not_called()


def test_unsubscribe_and_failing_listener():
    event = ChangeEvent()
    broken = MagicMock(side_effect=RuntimeError("listener bug"))
    ok = MagicMock()
    event.subscribe(broken)
    unsubscribe = event.subscribe(ok)

    event.fire()
    ok.assert_called_once()

    unsubscribe()
    event.fire()
    ok.assert_called_once()
    assert broken.call_count == 2


def test_compose_grouping_through_provider(provider, backend):
    backend.list_containers.return_value = [
        compose("c1", "web", "myapp"),
        ContainerRecord(id="p1", name="solo", status="Exited (1) 1 hour ago"),
        compose("c2", "db", "myapp"),
        compose("c1", "web", "myapp"),
    ]

    async def scenario():
        nodes = await provider.get_children(CONTAINERS_ROOT)
        assert [n.context_value for n in nodes] == [CONTAINER, COMPOSE_GROUP]
        group = nodes[1]
        children = await provider.get_children(group)
        assert [c.id for c in children] == ["c1", "c2"]

    asyncio.run(scenario())


def test_failing_category_is_isolated(provider, backend, notifier):
    backend.list_pods.side_effect = EngineError(["podman", "pod", "ls"], 125, "boom")
    backend.list_volumes.return_value = [VolumeRecord("data", "local")]

    async def scenario():
        pods = await provider.get_children(category_item("Pods", "pods"))
        volumes = await provider.get_children(category_item("Volumes", "volumes"))
        return pods, volumes

    pods, volumes = asyncio.run(scenario())

    assert pods == []
    assert [v.label for v in volumes] == ["data (local)"]
    notifier.error.assert_called_once()
    message, command = notifier.error.call_args[0]
    assert "pods" in message
    assert command == "podman pod ls"


def test_pods_and_pod_containers(provider, backend):
    backend.list_pods.return_value = [PodRecord("pod1", "web", "Running"), PodRecord("", "", "")]
    backend.list_pod_containers.return_value = [
        PodContainerRecord("ctr1", "infra", "Up 5 minutes", "2024-01-01"),
    ]

    async def scenario():
        pods = await provider.get_children(category_item("Pods", "pods"))
        assert len(pods) == 1
        pod = pods[0]
        assert pod.context_value == POD
        assert pod.label == "web (pod1)"
        assert pod.collapsible
        return await provider.get_children(pod)

    children = asyncio.run(scenario())
    backend.list_pod_containers.assert_awaited_once_with("pod1")
    assert children[0].label == "infra (ctr1)"
    assert children[0].is_running
    assert "Created: 2024-01-01" in children[0].status


def test_images_grouped_by_id(provider, backend):
    backend.list_images.return_value = [
        ImageRecord("abc", "nginx", "latest"),
        ImageRecord("abc", "nginx", "1.25"),
        ImageRecord("def", "redis", "7"),
        ImageRecord("ghi", "<none>", "<none>"),
    ]
    backend.list_used_image_ids.return_value = {"abc0123456789"}

    async def scenario():
        images = await provider.get_children(category_item("Images", "images"))
        tags = await provider.get_children(images[0])
        return images, tags

    images, tags = asyncio.run(scenario())

    assert [i.label for i in images] == ["abc (2 tags)", "redis:7 (def)"]
    assert all(i.context_value == IMAGE for i in images)
    assert images[0].collapsible and images[0].is_used
    assert not images[1].collapsible and not images[1].is_used
    assert [t.label for t in tags] == ["nginx:latest", "nginx:1.25"]
    assert all(t.context_value == IMAGE_TAG and t.status == "abc" for t in tags)


def test_networks(provider, backend):
    backend.list_networks.return_value = [NetworkRecord("podman", "bridge")]
    nodes = asyncio.run(provider.get_children(category_item("Networks", "networks")))
    assert nodes[0].label == "podman (bridge)"
    assert nodes[0].resource_name == "podman"


def test_refresh_overview(provider, backend):
    backend.system_df.return_value = "TYPE  TOTAL\nImages  3\n\n"

    async def scenario():
        await provider.refresh_overview()
        assert provider.refresher.state == PENDING
        provider.refresher.cancel()
        return await provider.get_children(category_item("Overview", "overview"))

    items = asyncio.run(scenario())
    assert [i.label for i in items] == ["TYPE  TOTAL", "Images  3"]
    assert all(i.context_value == OVERVIEW_ITEM for i in items)


def test_refresh_overview_failure_notifies(provider, backend, notifier):
    backend.system_df = AsyncMock(side_effect=EngineError(["podman", "system", "df"], 1, "no"))

    async def scenario():
        await provider.refresh_overview()
        assert provider.refresher.state == IDLE

    asyncio.run(scenario())
    notifier.error.assert_called_once()
    assert notifier.error.call_args[0][1] == "podman system df"


def test_concurrent_reads_share_one_fetch(provider, backend):
    backend.list_containers.return_value = [compose("c1", "web", "myapp")]

    async def scenario():
        return await asyncio.gather(
            provider.get_children(CONTAINERS_ROOT),
            provider.get_children(CONTAINERS_ROOT),
        )

    first, second = asyncio.run(scenario())

    assert first is second
    assert [c.id for c in first[0].children] == ["c1"]
    assert backend.list_containers.await_count == 1
    assert [c.id for c in provider.cache.get("containers-containers")[0].children] == ["c1"]


def test_fetch_spanning_a_refresh_is_recomputed(provider, backend):
    async def slow_listing():
        await asyncio.sleep(0.05)
        return [compose("c1", "web", "myapp")]

    backend.list_containers.side_effect = slow_listing

    async def scenario():
        before = asyncio.ensure_future(provider.get_children(CONTAINERS_ROOT))
        await asyncio.sleep(0)
        provider.refresh()
        await asyncio.sleep(0.03)
        assert provider.cache.generation == 1
        after = await provider.get_children(CONTAINERS_ROOT)
        return await before, after

    before, after = asyncio.run(scenario())

    assert [c.id for c in after[0].children] == ["c1"]
    assert [c.id for c in before[0].children] == ["c1"]
    cached = provider.cache.get("containers-containers")
    assert [c.id for c in cached[0].children] == ["c1"]


def _pod_overlap(backend):
    backend.list_containers.return_value = [compose("c1", "web", "myapp")]
    backend.list_pods.return_value = [PodRecord("pod1", "web", "Running")]
    backend.list_pod_containers.return_value = [
        PodContainerRecord("c1", "web", "Up 1 minute", "2024-01-01", "myapp"),
        PodContainerRecord("infra1", "infra", "Up 1 minute", "2024-01-01"),
    ]


def _expand_containers_then_pod(provider):
    async def scenario():
        await provider.get_children(CONTAINERS_ROOT)
        pods = await provider.get_children(category_item("Pods", "pods"))
        return await provider.get_children(pods[0])
    return asyncio.run(scenario())


def test_refresh_scope_hides_compose_member_already_listed(backend, notifier, path_store, config):
    _pod_overlap(backend)
    provider = PodmanTreeDataProvider(backend, notifier, path_store, config)
    assert provider.cache.dedup_scope == "refresh"

    children = _expand_containers_then_pod(provider)
    assert [c.id for c in children] == ["infra1"]


def test_category_scope_lists_compose_member_in_pod(backend, notifier, path_store, config):
    _pod_overlap(backend)
    config.get_config().tree.dedup_scope = "category"
    provider = PodmanTreeDataProvider(backend, notifier, path_store, config)

    children = _expand_containers_then_pod(provider)
    assert [c.id for c in children] == ["c1", "infra1"]
    assert children[0].compose_project == "myapp"


def test_container_listing_end_to_end(config, notifier, path_store, mocker):
    stdout = (
        "c1|web|Up 3 minutes|com.docker.compose.project=myapp,"
        "com.docker.compose.project.working_dir=/srv/app,"
        "com.docker.compose.project.config_files=docker-compose.yml\n"
        "c2|api|Exited (0) 2 hours ago|\n"
    ).encode()
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, b""))
    process.returncode = 0
    mocker.patch(
        "podmanager.backend.asyncio.create_subprocess_exec",
        new_callable=AsyncMock,
        return_value=process,
    )
    provider = PodmanTreeDataProvider(PodmanBackend(config), notifier, path_store, config)

    nodes = asyncio.run(provider.get_children(CONTAINERS_ROOT))

    assert [n.context_value for n in nodes] == [CONTAINER, COMPOSE_GROUP]
    standalone, group = nodes
    assert standalone.id == "c2"
    assert standalone.is_running is False
    assert group.label == "myapp"
    assert group.fs_path == "/srv/app/docker-compose.yml"
    assert [(c.id, c.is_running) for c in group.children] == [("c1", True)]
    notifier.error.assert_not_called()
