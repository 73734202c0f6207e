from __future__ import annotations

from idleeconomy.simulation import SimulationResult


def plot_simulation(
    result: SimulationResult,
    output_path: str | None = None,
) -> None:
    """Generate a 3-panel matplotlib visualization of a simulation run.

    Requires matplotlib (optional dependency).
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError(
            "matplotlib is required for visualization. "
            "Install with: pip install idleeconomy[viz]"
        )

    fig, axes = plt.subplots(1, 3, figsize=(18, 5))
    fig.suptitle(f"{result.catalog_name}: {result.outcome}", fontsize=14)

    resource_ids = sorted({rid for s in result.snapshots for rid in s.resources})
    times = [s.time_s for s in result.snapshots]

    # 1. Resource amounts over time (log scale)
    ax1 = axes[0]
    for rid in resource_ids:
        values = [max(s.resources.get(rid, 0.0), 1e-10) for s in result.snapshots]
        ax1.plot(times, values, label=rid)
    ax1.set_yscale("log")
    ax1.set_xlabel("Time (s)")
    ax1.set_ylabel("Amount")
    ax1.set_title("Resources")
    ax1.legend(fontsize=8)
    ax1.grid(True, alpha=0.3)

    # 2. Production rates over time
    ax2 = axes[1]
    for rid in resource_ids:
        rates = [s.rates.get(rid, 0.0) for s in result.snapshots]
        if any(r > 0 for r in rates):
            ax2.plot(times, rates, label=rid)
    ax2.set_xlabel("Time (s)")
    ax2.set_ylabel("Rate (/s)")
    ax2.set_title("Production Rates")
    ax2.legend(fontsize=8)
    ax2.grid(True, alpha=0.3)

    # 3. Purchase timeline
    ax3 = axes[2]
    if result.purchases:
        building_ids = sorted({p.building_id for p in result.purchases})
        y_map = {b: i for i, b in enumerate(building_ids)}
        ax3.scatter(
            [p.time_s for p in result.purchases],
            [y_map[p.building_id] for p in result.purchases],
            s=10,
            alpha=0.6,
        )
        ax3.set_yticks(range(len(building_ids)))
        ax3.set_yticklabels(building_ids, fontsize=7)
        ax3.set_xlabel("Time (s)")
        ax3.set_title("Purchase Timeline")
        ax3.grid(True, alpha=0.3)

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path, dpi=150)
    else:
        plt.show()
