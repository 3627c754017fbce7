"""
Persistent project name -> compose file mapping.

Compose commands need the file a project was started from. Container labels
usually carry it; when they don't, the last path seen for the project is
looked up here. The mapping lives in a small YAML file under the data
directory and is rewritten on every store.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from . import get_data_dir

logger = logging.getLogger(__name__)


class ComposePathStore:
    def __init__(self, file_path: Optional[Union[str, Path]] = None):
        self.file_path = Path(file_path) if file_path else get_data_dir() / "compose_paths.yaml"
        self._paths: Dict[str, str] = {}
        self.load()

    def load(self) -> None:
        try:
            if self.file_path.exists():
                with open(self.file_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                if isinstance(data, dict):
                    self._paths = {str(k): str(v) for k, v in data.items()}
        except Exception as e:
            logger.error(f"Failed to load compose paths from {self.file_path}: {e}")
            self._paths = {}

    def save(self) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "w") as f:
                yaml.safe_dump(self._paths, f, default_flow_style=False)
        except Exception as e:
            logger.error(f"Failed to save compose paths to {self.file_path}: {e}")

    def store(self, project_name: str, file_path: str) -> None:
        if not project_name or not file_path:
            return
        if self._paths.get(project_name) == file_path:
            return
        self._paths[project_name] = file_path
        logger.debug(f"Stored compose path for {project_name}: {file_path}")
        self.save()

    def get(self, project_name: str) -> Optional[str]:
        return self._paths.get(project_name)

    def all(self) -> Dict[str, str]:
        return dict(self._paths)

    def existing(self) -> Dict[str, str]:
        """Stored entries whose compose file is still on disk."""
        return {name: path for name, path in self._paths.items() if os.path.exists(path)}
