"""
podmanager - A terminal tree view for Podman resources.

This module provides a Textual-based browser over the Podman CLI. It shells out
to the engine, parses its pipe-delimited listings and organizes the results in
a tree of containers, pods, images, volumes, networks and a disk usage overview.

Features:
  - Compose projects inferred from container labels and grouped in the tree
  - Debounced refresh with per-node caching
  - Start/stop/restart/delete wrappers for containers, pods and compose stacks
  - Errors surfaced with the failing command ready to copy

Main Components:
  - provider.py: Tree data provider, cache and refresh controller
  - grouping.py: Compose project grouping and duplicate suppression
  - labels.py: Label blob parsing
  - backend.py: Podman CLI wrapper
  - actions.py: Action handlers behind the UI keys and tools menu
  - textual_app.py: Terminal UI

Usage:
  python -m podmanager

Dependencies:
  - textual
  - PyYAML
  - rich
  - Python 3.10+
"""

import os
from pathlib import Path

__version__ = "0.1.0"


def get_data_dir() -> Path:
    """Return XDG_DATA_HOME/podmanager (defaults to ~/.local/share/podmanager)."""
    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if not xdg_data_home:
        return Path.home() / '.local' / 'share' / 'podmanager'
    return Path(xdg_data_home) / 'podmanager'


def get_log_path() -> str:
    """
    Get the log file path following XDG Base Directory spec.

    Returns XDG_DATA_HOME/podmanager/logs/podmanager.log with fallback to /tmp.
    Creates directory if it doesn't exist.

    Returns:
        str: Absolute path to log file (/tmp/podmanager.log as fallback)
    """
    log_dir = get_data_dir() / 'logs'

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return str(log_dir / 'podmanager.log')
    except (PermissionError, OSError):
        # Fallback to /tmp if permission denied
        return '/tmp/podmanager.log'
