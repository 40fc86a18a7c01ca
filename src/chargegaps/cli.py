import argparse
from pathlib import Path

from chargegaps.settings import load_settings, resolve_worker_count


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default="config/default.yaml", help="Path to config YAML")
    common.add_argument("--scenario", default=None, help="Scenario name (config/scenarios/<name>.yaml)")

    parser = argparse.ArgumentParser(prog="chargegaps", description="EV charging gap finder", parents=[common])

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("fetch-chargers", parents=[common], help="Download the NREL charger export (needs NREL_API_KEY)")
    run = sub.add_parser("run", parents=[common], help="Compute the charging-gap polygon")
    run.add_argument("--chargers", default=None, help="Charger CSV path (otherwise config or download)")
    run.add_argument("--resolution", type=float, default=None, help="Grid resolution in degrees")
    run.add_argument("--osrm-url", default=None, help="Base URL of the OSRM server")
    run.add_argument("--workers", type=int, default=None, help="Worker threads (and chunks)")
    sub.add_parser("info", parents=[common], help="Print the resolved run settings")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(Path(args.config), scenario=args.scenario)

    if args.command == "info":
        region = settings["region"]
        run_cfg = settings.get("run", {}) or {}
        print(
            f"region lat {region['lat_min']}..{region['lat_max']} lon {region['lon_min']}..{region['lon_max']}\n"
            f"resolution {settings['grid']['resolution_deg']} deg\n"
            f"osrm {settings['osrm']['base_url']}\n"
            f"workers {resolve_worker_count(run_cfg.get('workers', 'auto'))}"
        )
        return

    if args.command == "fetch-chargers":
        from chargegaps.ingestion.chargers import download_chargers

        print(download_chargers(settings))
        return

    if args.command == "run":
        from chargegaps.pipeline import run_gaps

        if args.resolution is not None:
            settings["grid"]["resolution_deg"] = float(args.resolution)
        if args.osrm_url:
            settings["osrm"]["base_url"] = str(args.osrm_url)
        if args.workers is not None:
            settings.setdefault("run", {})["workers"] = int(args.workers)
            settings["run"]["chunks"] = int(args.workers)
        chargers = Path(args.chargers) if args.chargers else None
        print(run_gaps(settings, chargers_path=chargers))
        return

    raise SystemExit(f"Unknown command: {args.command}")
