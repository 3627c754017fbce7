"""
Compose metadata extraction from container label blobs.

The engine renders a container's labels as one string. Depending on the
engine version that string is a comma separated ``key=value`` list or a Go
map (``map[key:value key2:value2]``). These helpers pull single values out of
either form. Missing or malformed labels never raise: the caller's default is
returned instead.
"""

import os
import re
from typing import List

from .model import UNKNOWN_PROJECT

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_WORKING_DIR_LABEL = "com.docker.compose.project.working_dir"
COMPOSE_CONFIG_FILES_LABEL = "com.docker.compose.project.config_files"

_TOKEN_SPLIT = re.compile(r"[,\s]+")
_SEPARATORS = ("=", ":")


def _tokens(labels: str) -> List[str]:
    blob = (labels or "").strip()
    if blob.startswith("map[") and blob.endswith("]"):
        blob = blob[4:-1]
    return [t for t in _TOKEN_SPLIT.split(blob) if t]


def _split_token(token: str):
    # The key ends at whichever separator comes first
    positions = [token.find(sep) for sep in _SEPARATORS if sep in token]
    if not positions:
        return token, None
    idx = min(positions)
    return token[:idx], token[idx + 1:]


def extract_label_value(labels: str, key: str, default: str = "") -> str:
    """Return the value of the first token whose key is exactly ``key``."""
    for token in _tokens(labels):
        token_key, value = _split_token(token)
        if token_key == key and value:
            return value
    return default


def is_compose_labels(labels: str) -> bool:
    return COMPOSE_PROJECT_LABEL in (labels or "")


def extract_compose_project(labels: str) -> str:
    return extract_label_value(labels, COMPOSE_PROJECT_LABEL, UNKNOWN_PROJECT)


def extract_compose_file(labels: str) -> str:
    """
    Resolve the compose file path from the working-dir and config-files labels.

    Returns "" unless both are present. When config_files lists several files
    the first one wins (the list is comma separated, so tokenising already
    keeps only the first).
    """
    working_dir = extract_label_value(labels, COMPOSE_WORKING_DIR_LABEL, "")
    if not working_dir:
        return ""
    config_file = extract_label_value(labels, COMPOSE_CONFIG_FILES_LABEL, "")
    if not config_file:
        return ""
    return os.path.join(working_dir, config_file)
