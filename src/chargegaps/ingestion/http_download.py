from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import requests

# Query parameters that must never end up in metadata files or logs.
_SECRET_PARAMS = {"api_key"}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _write_json_atomic(path: Path, data: Any) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(p)


def redact_params(params: dict[str, Any] | None) -> dict[str, Any]:
    return {k: ("***" if k in _SECRET_PARAMS else v) for k, v in (params or {}).items()}


@dataclass(frozen=True)
class DownloadResult:
    status: str  # "downloaded" | "not_modified"
    output_path: Path
    fetched_at: str
    etag: str | None
    last_modified: str | None


def _previous_meta(meta_path: Path, output_path: Path) -> dict[str, Any]:
    # Validators are only trusted while the file they describe is still on disk.
    if not (Path(meta_path).exists() and Path(output_path).exists()):
        return {}
    try:
        loaded = json.loads(Path(meta_path).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return loaded if isinstance(loaded, dict) else {}


def _conditional_headers(prev: dict[str, Any]) -> dict[str, str]:
    pairs = (("If-None-Match", prev.get("etag")), ("If-Modified-Since", prev.get("last_modified")))
    return {name: value for name, value in pairs if isinstance(value, str) and value}


def download_with_cache_headers(
    *,
    url: str,
    output_path: Path,
    meta_path: Path,
    params: dict[str, Any] | None = None,
    timeout_s: int = 120,
    session: requests.Session | None = None,
) -> DownloadResult:
    """
    Download `url` to `output_path`, sending If-None-Match / If-Modified-Since
    from the previous download's meta file so an unchanged bulk export is not
    transferred twice. HTTP errors propagate as `requests.HTTPError`.
    """
    output_path = Path(output_path)
    prev = _previous_meta(meta_path, output_path)

    resp = (session or requests).get(url, params=params, headers=_conditional_headers(prev), timeout=timeout_s)
    if resp.status_code == 304:
        return DownloadResult(
            status="not_modified",
            output_path=output_path,
            fetched_at=utc_now_iso(),
            etag=prev.get("etag"),
            last_modified=prev.get("last_modified"),
        )
    resp.raise_for_status()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    partial = output_path.with_name(output_path.name + ".part")
    partial.write_bytes(resp.content)
    partial.replace(output_path)

    result = DownloadResult(
        status="downloaded",
        output_path=output_path,
        fetched_at=utc_now_iso(),
        etag=resp.headers.get("ETag"),
        last_modified=resp.headers.get("Last-Modified"),
    )
    _write_json_atomic(
        Path(meta_path),
        {
            "url": url,
            "params": redact_params(params),
            "fetched_at": result.fetched_at,
            "fetched_at_epoch_s": int(time.time()),
            "etag": result.etag,
            "last_modified": result.last_modified,
            "bytes": len(resp.content),
            "status": result.status,
        },
    )
    return result
