"""Deps manifest loading and saving."""

import json
import re
from pathlib import Path

from pydantic import ValidationError

from .errors import ParseError
from .models import DependencyRecord, ManifestSnapshot

DEFAULT_INDENT = 2


class ManifestParser:
    """Parser for JSON deps manifests such as istio.deps."""

    def _parse_record(self, index: int, item: object) -> DependencyRecord:
        if not isinstance(item, dict):
            raise ParseError(f"record {index} is not an object")
        try:
            return DependencyRecord.model_validate(item)
        except ValidationError as e:
            raise ParseError(f"record {index} is malformed: {e}") from e

    def parse(self, content: str) -> ManifestSnapshot:
        """Parse manifest content into a ManifestSnapshot."""
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e}") from e

        if not isinstance(data, list):
            raise ParseError("manifest must be a JSON array of dependencies")

        records = [self._parse_record(i, item) for i, item in enumerate(data)]

        seen: set[str] = set()
        for record in records:
            if record.name in seen:
                raise ParseError(f"duplicate dependency name {record.name!r}")
            seen.add(record.name)

        return ManifestSnapshot(raw=content, records=records, originals=data)


def parse_manifest(content: str) -> ManifestSnapshot:
    """Parse deps manifest content.

    Args:
        content: The manifest file content

    Returns:
        Parsed ManifestSnapshot object
    """
    return ManifestParser().parse(content)


def load_manifest(path: Path) -> ManifestSnapshot:
    """Load the deps manifest at path."""
    try:
        content = Path(path).read_bytes().decode()
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"cannot read {path}: {e}") from e

    try:
        return parse_manifest(content)
    except ParseError as e:
        raise ParseError(f"{path}: {e}") from e


def _detect_indent(raw: str) -> int:
    match = re.search(r"^\[\s*\n([ \t]+)\S", raw)
    if match:
        return len(match.group(1).expandtabs(DEFAULT_INDENT))
    return DEFAULT_INDENT


def _merge_record(original: dict, record: DependencyRecord) -> dict:
    """Overlay record values on the original object, keeping its key order."""
    updated = record.model_dump(by_alias=True, exclude_unset=True)
    merged = {key: updated.get(key, value) for key, value in original.items()}
    for key, value in updated.items():
        merged.setdefault(key, value)
    return merged


def dump_manifest(snapshot: ManifestSnapshot) -> str:
    """Serialize a snapshot back to manifest text.

    Unmodified snapshots return their raw text unchanged.
    """
    if not snapshot.is_modified():
        return snapshot.raw

    items = []
    for index, record in enumerate(snapshot.records):
        original = snapshot.originals[index] if index < len(snapshot.originals) else {}
        items.append(_merge_record(original, record))

    content = json.dumps(items, indent=_detect_indent(snapshot.raw), ensure_ascii=False)
    if snapshot.raw.endswith("\n"):
        content += "\n"
    return content


def save_manifest(path: Path, snapshot: ManifestSnapshot) -> None:
    """Write the snapshot over the manifest at path."""
    Path(path).write_bytes(dump_manifest(snapshot).encode())
