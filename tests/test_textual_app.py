import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from podmanager.backend import EngineError
from podmanager.model import ImageRecord, NetworkRecord, VolumeRecord
from podmanager.textual_app import PodmanTextualApp


@pytest.fixture
def images(backend):
    backend.list_images.return_value = [
        ImageRecord("abc", "nginx", "latest"),
        ImageRecord("abc", "nginx", "latest"),
        ImageRecord("def", "<none>", "<none>"),
    ]
    return backend


def run_flow(backend, path_store, choices, answers):
    async def scenario():
        app = PodmanTextualApp(backend=backend, path_store=path_store)
        app.notify = MagicMock()
        app._choose = AsyncMock(side_effect=choices)
        app._input = AsyncMock(side_effect=answers)
        app.actions.create_container = AsyncMock(return_value=True)
        await app._create_container_flow()
        return app

    return asyncio.run(scenario())


def test_simple_container_flow(images, path_store):
    app = run_flow(images, path_store, ["simple", "nginx:latest"], [None, "8080:80"])

    image_options = app._choose.call_args_list[1][0][1]
    assert image_options == [("nginx:latest", "nginx:latest")]
    app.actions.create_container.assert_awaited_once_with("nginx:latest", name=None, ports=["8080:80"])


def test_advanced_container_flow(images, path_store):
    images.list_volumes.return_value = [VolumeRecord("data", "local")]
    images.list_networks.return_value = [NetworkRecord("podman", "bridge"), NetworkRecord("backend", "bridge")]

    app = run_flow(
        images, path_store,
        ["advanced", "nginx:latest", "data", "backend"],
        ["web", "/var/lib/data", "A=1,B=2", "0.5", "512m", "type=bind,src=/a,target=/b; type=tmpfs,target=/t"],
    )

    network_options = app._choose.call_args_list[3][0][1]
    assert [value for _, value in network_options][1:] == ["backend"]
    app.actions.create_container.assert_awaited_once_with(
        "nginx:latest",
        name="web",
        volumes=["data:/var/lib/data"],
        network="backend",
        env=["A=1", "B=2"],
        cpus="0.5",
        memory="512m",
        mounts=["type=bind,src=/a,target=/b", "type=tmpfs,target=/t"],
    )


def test_advanced_flow_skips_optional_choices(images, path_store):
    from podmanager.textual_app import NO_CHOICE

    images.list_volumes.return_value = [VolumeRecord("data", "local")]
    images.list_networks.return_value = [NetworkRecord("podman", "bridge")]

    app = run_flow(
        images, path_store,
        ["advanced", "nginx:latest", NO_CHOICE],
        [None, None, None, None, None],
    )

    app.actions.create_container.assert_awaited_once_with(
        "nginx:latest", name=None, env=[], cpus=None, memory=None, mounts=[],
    )


def test_container_flow_without_images(backend, path_store):
    app = run_flow(backend, path_store, ["simple"], [])
    app.actions.create_container.assert_not_awaited()


def test_container_flow_listing_failure(backend, path_store):
    backend.list_images.side_effect = EngineError(["podman", "image", "ls"], 125, "down")
    app = run_flow(backend, path_store, ["simple"], [])
    app.actions.create_container.assert_not_awaited()
    assert app.notifier.last_command == "podman image ls"
    app.notify.assert_called_once()
