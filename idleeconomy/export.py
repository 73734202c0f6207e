from __future__ import annotations

import csv
import json
from pathlib import Path

from idleeconomy.simulation import SimulationResult


def export_csv(result: SimulationResult, path: str | Path) -> None:
    """Export simulation data as CSV files.

    Creates two files:
      - {path}_resources.csv
      - {path}_purchases.csv
    """
    base = str(path)

    # Resource series
    with open(f"{base}_resources.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["time", "resource_id", "value", "rate", "lifetime"])
        for s in result.snapshots:
            for rid in sorted(s.resources):
                writer.writerow([
                    s.time_s,
                    rid,
                    s.resources[rid],
                    s.rates.get(rid, 0.0),
                    s.lifetime.get(rid, 0.0),
                ])

    # Purchases
    with open(f"{base}_purchases.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["time", "building_id", "count", "cost_json"])
        for p in result.purchases:
            writer.writerow([p.time_s, p.building_id, p.count, json.dumps(p.costs)])


def export_json(result: SimulationResult, path: str | Path) -> None:
    """Export the full simulation result as JSON."""
    final = result.final
    data = {
        "catalog": result.catalog_name,
        "outcome": result.outcome,
        "duration_s": result.duration_s,
        "tick_ms": result.tick_ms,
        "purchase_count": len(result.purchases),
        "final": None if final is None else {
            "time": final.time_s,
            "resources": final.resources,
            "lifetime": final.lifetime,
            "rates": final.rates,
            "buildings": final.buildings,
        },
        "purchases": [
            {
                "time": p.time_s,
                "building_id": p.building_id,
                "count": p.count,
                "cost_paid": p.costs,
            }
            for p in result.purchases
        ],
    }
    with open(str(path), "w") as f:
        json.dump(data, f, indent=2)
