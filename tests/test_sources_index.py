from __future__ import annotations

from pathlib import Path

from chargegaps.ingestion.sources_index import SourceRecord, load_sources_index, sha256_file, upsert_source_record


def test_sources_index_upsert(tmp_path: Path) -> None:
    settings = {
        "paths": {"raw_dir": str(tmp_path / "raw")},
    }

    r1 = SourceRecord(
        source_id="nrel",
        fetched_at="2026-01-01T00:00:00+00:00",
        output_path="data/raw/nrel/alt_fuel_stations.csv",
        checksum_sha256="abc",
        status="downloaded",
        rows=10,
    )
    upsert_source_record(settings, r1)
    upsert_source_record(
        settings,
        SourceRecord(
            source_id="local",
            fetched_at="2026-01-01T00:00:00+00:00",
            output_path="chargers.csv",
            checksum_sha256="zzz",
            status="downloaded",
        ),
    )

    idx = load_sources_index(settings)
    assert [r["source_id"] for r in idx["sources"]] == ["local", "nrel"]

    r2 = SourceRecord(
        source_id="nrel",
        fetched_at="2026-01-02T00:00:00+00:00",
        output_path="data/raw/nrel/alt_fuel_stations.csv",
        checksum_sha256="def",
        status="not_modified",
        rows=12,
        details={"etag": "v2"},
    )
    upsert_source_record(settings, r2)
    idx2 = load_sources_index(settings)
    assert len(idx2["sources"]) == 2
    nrel = idx2["sources"][1]
    assert nrel["checksum_sha256"] == "def"
    assert nrel["rows"] == 12
    assert nrel["details"] == {"etag": "v2"}


def test_corrupt_index_is_rebuilt(tmp_path: Path) -> None:
    settings = {"paths": {"raw_dir": str(tmp_path)}}
    (tmp_path / "sources_index.json").write_text("{not json", encoding="utf-8")
    assert load_sources_index(settings)["sources"] == []


def test_sha256_file(tmp_path: Path) -> None:
    p = tmp_path / "x.txt"
    p.write_bytes(b"abc")
    assert sha256_file(p) == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
