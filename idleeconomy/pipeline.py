from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping

from idleeconomy.building import ProductionDef, ProductionOutput

if TYPE_CHECKING:
    from idleeconomy.multiplier import MultiplierAggregator


def output_amount(
    output: ProductionOutput,
    production: ProductionDef,
    owned: int,
    delta_ms: float,
    multiplier: float = 1.0,
) -> float:
    """Amount of one output produced by *owned* units over *delta_ms*."""
    cycles = (delta_ms / 1000.0) / (production.base_interval_ms / 1000.0)
    return output.base_amount * owned * cycles * multiplier


def output_rate(
    output: ProductionOutput,
    production: ProductionDef,
    owned: int,
    multiplier: float = 1.0,
) -> float:
    """Expected per-second output, with chance folded in as a factor."""
    rate = output.base_amount * owned / (production.base_interval_ms / 1000.0) * multiplier
    if output.chance is not None and output.chance < 1:
        rate *= output.chance
    return rate


@dataclass(frozen=True)
class InputPlan:
    """Inputs to draw for one tick and the fraction of output they allow."""

    efficiency: float
    consumed: dict[str, float]


def plan_inputs(
    available: Mapping[str, float], production: ProductionDef, owned: int, delta_ms: float
) -> InputPlan:
    """Scale a tick's input demand down to what the ledger can supply.

    Efficiency is the smallest available/required ratio across inputs,
    clamped to [0, 1]; every input is drawn at that same ratio.
    """
    if not production.inputs:
        return InputPlan(1.0, {})

    cycles = (delta_ms / 1000.0) / (production.base_interval_ms / 1000.0)
    required = {inp.resource_id: inp.amount * owned * cycles for inp in production.inputs}

    efficiency = 1.0
    for rid, need in required.items():
        if need <= 0:
            continue
        efficiency = min(efficiency, available.get(rid, 0.0) / need)
    efficiency = max(0.0, min(1.0, efficiency))
    return InputPlan(efficiency, {rid: need * efficiency for rid, need in required.items()})


class ProductionPipeline:
    """Resolves the multipliers that apply to a building's production."""

    def __init__(
        self,
        aggregator: MultiplierAggregator | None = None,
        production_stack: str = "all_production",
    ) -> None:
        self.aggregator = aggregator
        self.production_stack = production_stack

    def multiplier(self, production: ProductionDef) -> float:
        if self.aggregator is None:
            return 1.0
        value = self.aggregator.get_value(self.production_stack)
        if production.amount_stack_id:
            value *= self.aggregator.get_value(production.amount_stack_id)
        return value

    def rates(self, production: ProductionDef, owned: int) -> dict[str, float]:
        """Per-second output of each resource for *owned* units."""
        mult = self.multiplier(production)
        result: dict[str, float] = {}
        for out in production.outputs:
            result[out.resource_id] = result.get(out.resource_id, 0.0) + output_rate(
                out, production, owned, mult
            )
        return result
