"""
User settings for podmanager, stored as YAML.

Settings live in ``$XDG_CONFIG_HOME/podmanager/config.yaml`` (falling back to
``~/.config``). The file is created with every default filled in on first
start; afterwards each section in it overrides the matching dataclass
below, key by key. Unknown keys are ignored and values of the wrong type
keep their default, so a hand-edited file can never stop the UI from
starting.

Sections:
- engine: podman executable, compose executable and invocation style,
  machine name
- tree: refresh debounce and duplicate-suppression scope
- keybindings: one key per UI action
- logging: level and optional log file override
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PODMAN_PATH = "podman"
DEFAULT_COMPOSE_PATH = "podman-compose"
DEFAULT_MACHINE_NAME = "podman-machine-default"
COMPOSE_STYLES = ("default", "podman-compose", "podman-space-compose")

@dataclass
class KeyBindings:
    """Key (or typed character) per UI action."""
    quit: str = "q"
    refresh: str = "f5"
    refresh_overview: str = "o"
    start: str = "s"
    stop: str = "t"
    restart: str = "r"
    delete: str = "d"
    logs: str = "l"
    shell: str = "e"
    compose_up: str = "u"
    compose_down: str = "D"
    copy_command: str = "y"

@dataclass
class EngineConfig:
    """How the engine and compose are invoked."""
    podman_path: str = DEFAULT_PODMAN_PATH
    compose_path: str = DEFAULT_COMPOSE_PATH
    compose_command_style: str = "default"
    machine_name: str = DEFAULT_MACHINE_NAME

@dataclass
class TreeConfig:
    refresh_debounce_ms: int = 300
    dedup_scope: str = "refresh"  # "refresh" or "category"

@dataclass
class LogConfig:
    level: str = "INFO"
    file_path: Optional[str] = None  # default log path when unset

@dataclass
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    tree: TreeConfig = field(default_factory=TreeConfig)
    keybindings: KeyBindings = field(default_factory=KeyBindings)
    logging: LogConfig = field(default_factory=LogConfig)


def default_config_dir() -> Path:
    xdg_config_home = os.environ.get('XDG_CONFIG_HOME')
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return base / "podmanager"


class ConfigManager:
    """Loads, validates and persists AppConfig; exposes typed getters."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_file = self.config_dir / "config.yaml"
        self._config = AppConfig()
        self.load_config()

    def load_config(self) -> None:
        if not self.config_file.exists():
            self.save_config()
            logger.info(f"Wrote default settings to {self.config_file}")
            return
        try:
            with open(self.config_file, 'r') as f:
                raw = yaml.safe_load(f) or {}
            if not isinstance(raw, dict):
                raise ValueError("top level must be a mapping")
            self._config = self._apply_overrides(AppConfig(), raw)
            logger.debug(f"Settings read from {self.config_file}")
        except Exception as e:
            logger.error(f"Ignoring unreadable settings file {self.config_file}: {e}")
            self._config = AppConfig()

    def save_config(self) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w') as f:
                yaml.safe_dump(asdict(self._config), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            logger.error(f"Could not write settings to {self.config_file}: {e}")

    def get_config(self) -> AppConfig:
        return self._config

    def _apply_overrides(self, config: AppConfig, raw: Dict[str, Any]) -> AppConfig:
        for section in fields(config):
            overrides = raw.get(section.name)
            if isinstance(overrides, dict):
                self._override_section(section.name, getattr(config, section.name), overrides)

        if config.engine.compose_command_style not in COMPOSE_STYLES:
            logger.warning(f"Unknown compose_command_style {config.engine.compose_command_style!r}, using default")
            config.engine.compose_command_style = "default"
        return config

    def _override_section(self, name: str, target: Any, overrides: Dict[str, Any]) -> None:
        known = {f.name: getattr(target, f.name) for f in fields(target)}
        for key, value in overrides.items():
            if key not in known:
                logger.debug(f"Unknown setting {name}.{key} ignored")
                continue
            current = known[key]
            # None defaults accept any value; otherwise keep the default's type
            if current is not None and not isinstance(value, type(current)):
                logger.warning(f"Setting {name}.{key} should be {type(current).__name__}, keeping {current!r}")
                continue
            setattr(target, key, value)

    # --- KEYS ---

    def get_key_binding(self, action: str) -> str:
        return getattr(self._config.keybindings, action, '')

    def is_key_binding(self, key: str, action: str) -> bool:
        binding = self.get_key_binding(action)
        return bool(binding) and key == binding

    # --- LOGGING ---

    def get_log_level(self) -> str:
        return str(self._config.logging.level).upper()

    def get_custom_log_path(self) -> Optional[str]:
        return self._config.logging.file_path

    # --- ENGINE ---

    def get_podman_path(self) -> str:
        return self._config.engine.podman_path or DEFAULT_PODMAN_PATH

    def get_compose_path(self) -> str:
        return self._config.engine.compose_path or DEFAULT_COMPOSE_PATH

    def get_compose_command_style(self) -> str:
        return self._config.engine.compose_command_style

    def get_machine_name(self) -> str:
        return self._config.engine.machine_name or DEFAULT_MACHINE_NAME

    def reset_podman_path(self) -> None:
        """Restore the default engine executable and persist it."""
        self._config.engine.podman_path = DEFAULT_PODMAN_PATH
        self.save_config()
        logger.info("Podman path reset to default")

    # --- TREE ---

    def get_refresh_delay(self) -> float:
        """Debounce delay for tree refreshes, in seconds."""
        return max(0, self._config.tree.refresh_debounce_ms) / 1000.0

    def get_dedup_scope(self) -> str:
        return self._config.tree.dedup_scope


config_manager = ConfigManager()
