"""
Parsers for the engine's pipe-delimited listings.

Every listing command is run with a ``--format`` template whose fields are
joined with ``|``. Rows may come back short (older engines, empty template
fields), so each row is parsed into a ParseOk or ParseDegraded result: missing
trailing fields are replaced by the per-field defaults and named in
``ParseDegraded.defaulted``.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from .labels import extract_compose_file, extract_compose_project, is_compose_labels
from .model import (
    ContainerRecord, ImageRecord, NetworkRecord, ParseDegraded, ParseOk,
    ParseResult, PodContainerRecord, PodRecord, VolumeRecord,
)

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "|"

CONTAINER_FIELDS = ("ID", "Names", "Status", "Labels")
POD_CONTAINER_FIELDS = ("ID", "Names", "Status", "CreatedAt", "Labels")
POD_FIELDS = ("ID", "Name", "Status")
IMAGE_FIELDS = ("ID", "Repository", "Tag")
VOLUME_FIELDS = ("Name", "Driver")
NETWORK_FIELDS = ("Name", "Driver")


def format_template(fields: Sequence[str]) -> str:
    """Build the Go template passed to ``--format`` for ``fields``."""
    return FIELD_SEPARATOR.join("{{.%s}}" % f for f in fields)


def split_rows(stdout: str) -> List[str]:
    return [line for line in (stdout or "").splitlines() if line.strip()]


def split_fields(
    line: str, fields: Sequence[str], defaults: Optional[Dict[str, str]] = None
):
    """Map ``line`` onto ``fields``; returns (values, names of defaulted fields)."""
    defaults = defaults or {}
    parts = line.split(FIELD_SEPARATOR)
    values: Dict[str, str] = {}
    defaulted = []
    for idx, name in enumerate(fields):
        if idx < len(parts) and parts[idx] != "":
            values[name] = parts[idx]
        else:
            values[name] = defaults.get(name, "")
            defaulted.append(name)
    return values, tuple(defaulted)


def _result(record, defaulted) -> ParseResult:
    if defaulted:
        return ParseDegraded(record, defaulted)
    return ParseOk(record)


def parse_container_row(line: str) -> ParseResult:
    values, defaulted = split_fields(line, CONTAINER_FIELDS, {"Status": "Unknown"})
    status = values["Status"]
    labels = values["Labels"]
    is_compose = is_compose_labels(labels)
    record = ContainerRecord(
        id=values["ID"],
        name=values["Names"] or values["ID"] or "unnamed",
        status=status,
        is_running=status.startswith("Up"),
        is_compose=is_compose,
        compose_project=extract_compose_project(labels) if is_compose else "",
        compose_file=extract_compose_file(labels) if is_compose else "",
    )
    # A container without labels is the normal case, not a degraded row
    return _result(record, tuple(f for f in defaulted if f != "Labels"))


def parse_pod_container_row(line: str) -> ParseResult:
    values, defaulted = split_fields(line, POD_CONTAINER_FIELDS)
    labels = values["Labels"]
    record = PodContainerRecord(
        id=values["ID"],
        name=values["Names"] or values["ID"] or "unnamed",
        status=values["Status"],
        created=values["CreatedAt"],
        compose_project=extract_compose_project(labels) if is_compose_labels(labels) else "",
    )
    return _result(record, tuple(f for f in defaulted if f != "Labels"))


def parse_pod_row(line: str) -> ParseResult:
    values, defaulted = split_fields(line, POD_FIELDS)
    record = PodRecord(
        id=values["ID"],
        name=values["Name"] or values["ID"],
        status=values["Status"],
    )
    return _result(record, defaulted)


def parse_image_row(line: str) -> ParseResult:
    values, defaulted = split_fields(
        line, IMAGE_FIELDS, {"Repository": "<none>", "Tag": "<none>"}
    )
    return _result(ImageRecord(values["ID"], values["Repository"], values["Tag"]), defaulted)


def parse_volume_row(line: str) -> ParseResult:
    values, defaulted = split_fields(line, VOLUME_FIELDS)
    return _result(VolumeRecord(values["Name"], values["Driver"]), defaulted)


def parse_network_row(line: str) -> ParseResult:
    values, defaulted = split_fields(line, NETWORK_FIELDS)
    return _result(NetworkRecord(values["Name"], values["Driver"]), defaulted)


def parse_listing(stdout: str, row_parser: Callable[[str], ParseResult]) -> List:
    """Parse every non-empty row and return the records, logging degraded rows."""
    records = []
    for line in split_rows(stdout):
        result = row_parser(line)
        if result.degraded:
            logger.debug(f"Degraded row {line!r}: defaulted {', '.join(result.defaulted)}")
        records.append(result.record)
    return records
