from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path

from idleeconomy._types import now_ms
from idleeconomy.catalog import Catalog
from idleeconomy.errors import SaveError
from idleeconomy.offline import compute_offline_gain
from idleeconomy.save import deserialize
from idleeconomy.simulation import Simulation, offline_parity


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idleeconomy",
        description="idleeconomy: idle-game economy tools",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    sim = sub.add_parser("simulate", help="Run a headless simulation")
    sim.add_argument("catalog_module", help="Python module with define_catalog()")
    sim.add_argument("--seconds", type=float, default=600.0, help="Simulated time (s)")
    sim.add_argument("--tick-ms", type=float, default=100.0, help="Milliseconds per tick")
    sim.add_argument("--seed", type=int, default=None, help="Random seed")
    sim.add_argument(
        "--autobuy", action="store_true", help="Greedily buy the cheapest building"
    )
    sim.add_argument("--export-csv", default=None, help="CSV export path prefix")
    sim.add_argument("--export-json", default=None, help="JSON export path")
    sim.add_argument("--plot", default=None, help="Plot output path (PNG)")

    off = sub.add_parser("offline", help="Compute offline gain for a save file")
    off.add_argument("catalog_module", help="Python module with define_catalog()")
    off.add_argument("save_file", help="Path to a saved game (JSON)")
    off.add_argument(
        "--now", type=float, default=None, help="Current time in epoch ms (default: now)"
    )

    par = sub.add_parser("parity", help="Compare tick and offline production")
    par.add_argument("catalog_module", help="Python module with define_catalog()")
    par.add_argument("--seconds", type=float, default=3600.0, help="Compared duration (s)")
    par.add_argument("--tick-ms", type=float, default=100.0, help="Milliseconds per tick")
    par.add_argument(
        "--owned",
        action="append",
        default=[],
        metavar="BUILDING=COUNT",
        help="Owned buildings (default: one of each)",
    )

    return parser


def load_catalog(module_path: str) -> Catalog:
    """Import module and call define_catalog()."""
    mod = importlib.import_module(module_path)
    if not hasattr(mod, "define_catalog"):
        print(f"Error: module {module_path!r} has no define_catalog() function")
        sys.exit(1)
    return mod.define_catalog()


def parse_owned(items: list[str], catalog: Catalog) -> dict[str, int]:
    if not items:
        return {b.id: 1 for b in catalog.buildings}
    owned: dict[str, int] = {}
    for item in items:
        building_id, sep, count = item.partition("=")
        if not sep:
            raise ValueError(f"Expected BUILDING=COUNT, got {item!r}")
        owned[building_id.strip()] = int(count)
    return owned


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    catalog = load_catalog(args.catalog_module)

    if args.command == "simulate":
        _run_simulate(catalog, args)
    elif args.command == "offline":
        _run_offline(catalog, args)
    elif args.command == "parity":
        _run_parity(catalog, args)


def _run_simulate(catalog: Catalog, args) -> None:
    sim = Simulation(
        catalog,
        duration_s=args.seconds,
        tick_ms=args.tick_ms,
        seed=args.seed,
        autobuy=args.autobuy,
    )
    result = sim.run()

    print(f"{result.catalog_name}: {result.outcome}")
    print(f"Purchases: {len(result.purchases)}")
    final = result.final
    if final is not None:
        print("Final resources:")
        for rid in sorted(final.resources):
            print(
                f"  {rid}: {final.resources[rid]:.2f} "
                f"({final.rates.get(rid, 0.0):.3f}/s, lifetime {final.lifetime[rid]:.2f})"
            )
        owned = {bid: n for bid, n in final.buildings.items() if n > 0}
        if owned:
            print("Buildings:")
            for bid in sorted(owned):
                print(f"  {bid}: {owned[bid]}")

    if args.export_csv:
        from idleeconomy.export import export_csv
        export_csv(result, args.export_csv)
        print(f"\nCSV exported to {args.export_csv}_*.csv")

    if args.export_json:
        from idleeconomy.export import export_json
        export_json(result, args.export_json)
        print(f"\nJSON exported to {args.export_json}")

    if args.plot:
        from idleeconomy.visualization import plot_simulation
        plot_simulation(result, args.plot)
        print(f"\nPlot saved to {args.plot}")


def _run_offline(catalog: Catalog, args) -> None:
    text = Path(args.save_file).read_text(encoding="utf-8")
    try:
        state = deserialize(text, catalog)
    except SaveError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    now = now_ms() if args.now is None else args.now
    result = compute_offline_gain(catalog, state, state.last_played_at, now)
    if result is None:
        print("Offline time below threshold, nothing gained")
        return

    print(
        f"Offline {result.offline_time_ms / 1000.0:.0f}s at "
        f"{result.efficiency_applied:.0%} efficiency "
        f"({result.effective_seconds:.0f} effective seconds)"
    )
    for rid in sorted(result.resources_gained):
        print(f"  {rid}: +{result.resources_gained[rid]:.2f}")


def _run_parity(catalog: Catalog, args) -> None:
    owned = parse_owned(args.owned, catalog)
    report = offline_parity(catalog, owned, duration_s=args.seconds, tick_ms=args.tick_ms)
    for rid in sorted(set(report.tick_totals) | set(report.offline_totals)):
        print(
            f"  {rid}: tick={report.tick_totals.get(rid, 0.0):.4f} "
            f"offline={report.offline_totals.get(rid, 0.0):.4f}"
        )
    status = "OK" if report.ok else "MISMATCH"
    print(f"Parity {status}: max relative diff {report.max_rel_diff:.3e}")
    if not report.ok:
        sys.exit(1)
