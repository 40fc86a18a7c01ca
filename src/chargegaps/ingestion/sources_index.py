"""
Provenance index of downloaded inputs (`raw_dir/sources_index.json`).

One row per source id, replaced on every successful fetch, so a gap polygon
can always be traced back to the exact charger export (checksum + row count)
it was computed from.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from chargegaps.ingestion.http_download import _write_json_atomic, utc_now_iso


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with Path(path).open("rb") as f:
        for block in iter(lambda: f.read(1024 * 1024), b""):
            h.update(block)
    return h.hexdigest()


@dataclass(frozen=True)
class SourceRecord:
    source_id: str
    fetched_at: str
    output_path: str
    checksum_sha256: str
    status: str
    rows: int | None = None
    details: dict[str, Any] = field(default_factory=dict)


def sources_index_path(settings: dict[str, Any]) -> Path:
    return Path(settings["paths"]["raw_dir"]) / "sources_index.json"


def load_sources_index(settings: dict[str, Any]) -> dict[str, Any]:
    path = sources_index_path(settings)
    empty = {"generated_at": utc_now_iso(), "sources": []}
    if not path.exists():
        return empty
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        # A corrupt index is rebuilt rather than blocking a run.
        return empty
    if not isinstance(data, dict):
        return empty
    if not isinstance(data.get("sources"), list):
        data["sources"] = []
    return data


def upsert_source_record(settings: dict[str, Any], record: SourceRecord) -> Path:
    idx = load_sources_index(settings)
    rows = [r for r in idx["sources"] if not (isinstance(r, dict) and r.get("source_id") == record.source_id)]
    rows.append(asdict(record))
    rows.sort(key=lambda r: str(r.get("source_id", "")))

    idx["generated_at"] = utc_now_iso()
    idx["sources"] = rows
    path = sources_index_path(settings)
    _write_json_atomic(path, idx)
    return path
