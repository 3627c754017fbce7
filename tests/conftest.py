import os
import tempfile

# The global config manager writes its config file at import time
_sandbox = tempfile.mkdtemp(prefix="podmanager-tests-")
os.environ["XDG_CONFIG_HOME"] = os.path.join(_sandbox, "config")
os.environ["XDG_DATA_HOME"] = os.path.join(_sandbox, "data")

import pytest
from unittest.mock import AsyncMock, MagicMock

from podmanager.backend import PodmanBackend
from podmanager.compose_paths import ComposePathStore
from podmanager.config import ConfigManager
from podmanager.status import Notifier


@pytest.fixture
def config(tmp_path):
    cfg = ConfigManager(tmp_path / "config")
    cfg.get_config().tree.refresh_debounce_ms = 20
    return cfg


@pytest.fixture
def path_store(tmp_path):
    return ComposePathStore(tmp_path / "data" / "compose_paths.yaml")


@pytest.fixture
def notifier():
    return MagicMock(spec=Notifier)


@pytest.fixture
def backend(config):
    """A PodmanBackend whose engine queries are AsyncMocks returning nothing."""
    b = PodmanBackend(config)
    for name in ("list_containers", "list_pods", "list_pod_containers", "list_images",
                 "list_volumes", "list_networks"):
        setattr(b, name, AsyncMock(return_value=[]))
    b.list_used_image_ids = AsyncMock(return_value=set())
    b.system_df = AsyncMock(return_value="")
    return b
