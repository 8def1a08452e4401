"""GDPR Art. 20 data portability — render a personal-data aggregate.

Supports JSON, CSV and XML. CSV uses a long layout (one row per leaf field)
so every category fits one table; XML mirrors the JSON structure.

Usage:
    export = render_export(aggregate, ExportFormat.CSV)
    Response(export.content, media_type=export.media_type)
"""

from __future__ import annotations

import csv
import io
import json
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from nutribot.models.enums import ExportFormat

_MEDIA_TYPES: dict[ExportFormat, str] = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
    ExportFormat.XML: "application/xml",
}

CSV_COLUMNS = ("category", "record", "field", "value")

_XML_NAME = re.compile(r"^[A-Za-z_][\w.-]*$")


@dataclass(frozen=True)
class DataExport:
    content: str
    media_type: str
    filename: str
    exported_at: datetime


def _flatten(value: Any, prefix: str = "") -> list[tuple[str, Any]]:
    """Leaf (path, value) pairs of a nested structure."""
    if isinstance(value, dict):
        pairs: list[tuple[str, Any]] = []
        for key, item in value.items():
            pairs.extend(_flatten(item, f"{prefix}.{key}" if prefix else str(key)))
        return pairs
    if isinstance(value, list):
        pairs = []
        for index, item in enumerate(value):
            pairs.extend(_flatten(item, f"{prefix}[{index}]"))
        return pairs or [(prefix, "")]
    return [(prefix, value)]


def to_json(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2, default=str)


def to_csv(data: dict[str, Any]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for category, records in data.items():
        if not isinstance(records, list):
            for field, value in _flatten(records):
                writer.writerow([category, "", field, "" if value is None else value])
            continue
        for record in records:
            record_id = record.get("id", "") if isinstance(record, dict) else ""
            for field, value in _flatten(record):
                writer.writerow([category, record_id, field, "" if value is None else value])
    return buffer.getvalue()


def _append(parent: ET.Element, key: str, value: Any) -> None:
    if _XML_NAME.match(key):
        element = ET.SubElement(parent, key)
    else:
        element = ET.SubElement(parent, "field", name=key)

    if isinstance(value, dict):
        for child_key, child in value.items():
            _append(element, str(child_key), child)
    elif isinstance(value, list):
        for item in value:
            _append(element, "item", item)
    elif value is None:
        element.set("null", "true")
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    else:
        element.text = str(value)


def to_xml(data: dict[str, Any], exported_at: datetime) -> str:
    root = ET.Element("userData", exportDate=exported_at.isoformat())
    for key, value in data.items():
        _append(root, key, value)
    return ET.tostring(root, encoding="unicode", xml_declaration=True)


def render_export(data: dict[str, Any], fmt: ExportFormat | str) -> DataExport:
    fmt = ExportFormat(fmt)
    exported_at = datetime.now(UTC)
    if fmt is ExportFormat.JSON:
        content = to_json(data)
    elif fmt is ExportFormat.CSV:
        content = to_csv(data)
    else:
        content = to_xml(data, exported_at)
    return DataExport(
        content=content,
        media_type=_MEDIA_TYPES[fmt],
        filename=f"nutribot-data-{exported_at:%Y%m%d}.{fmt.value}",
        exported_at=exported_at,
    )
