from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4


@dataclass(frozen=True)
class FileMeta:
    path: str
    exists: bool
    size_bytes: int | None
    mtime: float | None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def new_run_id() -> str:
    return uuid4().hex


def file_meta(path: Path) -> FileMeta:
    p = Path(path)
    if not p.exists():
        return FileMeta(path=str(p), exists=False, size_bytes=None, mtime=None)
    st = p.stat()
    return FileMeta(path=str(p), exists=True, size_bytes=int(st.st_size), mtime=float(st.st_mtime))


def json_hash(data: Any) -> str:
    raw = json.dumps(data, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def config_fingerprint(settings: dict[str, Any]) -> dict[str, Any]:
    """
    The analysis knobs that change which points end up in the gap polygon.
    Paths and credentials are left out so the hash is shareable.
    """
    meta = settings.get("_meta", {}) or {}
    osrm = dict(settings.get("osrm", {}) or {})
    return {
        "scenario": meta.get("scenario"),
        "region": settings.get("region", {}),
        "grid": settings.get("grid", {}),
        "reachability": settings.get("reachability", {}),
        "osrm": {"base_url": osrm.get("base_url"), "profile": osrm.get("profile"), "retry": osrm.get("retry")},
        "chargers": {"excluded_network_marker": (settings.get("chargers", {}) or {}).get("excluded_network_marker")},
        "gaps": settings.get("gaps", {}),
    }


def build_run_meta(
    *,
    run_id: str,
    generated_at: str,
    settings: dict[str, Any],
    counts: dict[str, Any],
    inputs: list[FileMeta],
    outputs: list[FileMeta],
) -> dict[str, Any]:
    fingerprint = config_fingerprint(settings)
    return {
        "run_id": run_id,
        "generated_at": generated_at,
        "scenario": fingerprint.get("scenario"),
        "config_hash": json_hash(fingerprint),
        "config_fingerprint": fingerprint,
        "counts": counts,
        "inputs": [asdict(fm) for fm in inputs],
        "outputs": [asdict(fm) for fm in outputs],
    }


def write_json(path: Path, data: Any) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
