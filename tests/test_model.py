from podmanager.model import (
    COMPOSE_GROUP, CONTAINER, IMAGE, POD, PodmanItem, category_item,
)


def test_category_item_cache_key():
    item = category_item("Containers", "containers")
    assert item.id == "containers"
    assert item.cache_key == "containers-containers"
    assert item.collapsible


def test_container_icon_and_tooltip():
    running = PodmanItem(label="web (abc)", context_value=CONTAINER, id="abc", status="Up 1 minute", is_running=True)
    stopped = PodmanItem(label="db (def)", context_value=CONTAINER, id="def", status="Exited", is_running=False)
    assert running.icon == "●"
    assert stopped.icon == "○"
    assert running.tooltip == "ID: abc\nStatus: Up 1 minute"


def test_pod_icon_follows_status():
    assert PodmanItem(label="p", context_value=POD, status="Running").icon == "●"
    assert PodmanItem(label="p", context_value=POD, status="Exited").icon == "○"


def test_image_tooltip_reports_usage():
    image = PodmanItem(label="nginx:latest (abc)", context_value=IMAGE, id="abc", is_used=True)
    assert image.tooltip == "ID: abc\nUsed: Yes"


def test_compose_group_tooltip_includes_file():
    group = PodmanItem(label="myapp", context_value=COMPOSE_GROUP, compose_project="myapp",
                       fs_path="/srv/app/docker-compose.yml")
    assert group.tooltip == "Compose Project: myapp\nFile: /srv/app/docker-compose.yml"
    group.fs_path = ""
    assert group.tooltip == "Compose Project: myapp"
