"""Tests for pipeline module."""
import pytest

from idleeconomy.building import ProductionDef, ProductionOutput, ResourceAmount
from idleeconomy.multiplier import ActiveMultiplier, MultiplierAggregator, MultiplierStackDef, StackType
from idleeconomy.pipeline import ProductionPipeline, output_amount, output_rate, plan_inputs


def _make_production(**kwargs) -> ProductionDef:
    defaults = dict(outputs=(ProductionOutput("rice", 0.5),), base_interval_ms=1000)
    defaults.update(kwargs)
    return ProductionDef(**defaults)


def test_output_amount():
    prod = _make_production()
    assert output_amount(prod.outputs[0], prod, owned=10, delta_ms=2000) == 10


def test_output_amount_longer_interval():
    prod = _make_production(base_interval_ms=4000)
    assert output_amount(prod.outputs[0], prod, owned=2, delta_ms=1000) == 0.25


def test_output_rate_folds_in_chance():
    prod = _make_production(outputs=(ProductionOutput("lotus", 2.0, chance=0.25),))
    assert output_rate(prod.outputs[0], prod, owned=2) == 1.0


def test_plan_inputs_no_inputs():
    plan = plan_inputs({}, _make_production(), owned=5, delta_ms=1000)
    assert plan.efficiency == 1.0
    assert plan.consumed == {}


def test_plan_inputs_scales_to_scarcest():
    prod = _make_production(inputs=(ResourceAmount("water", 1.0), ResourceAmount("rice", 2.0)))
    plan = plan_inputs({"water": 10, "rice": 1}, prod, owned=1, delta_ms=1000)
    assert plan.efficiency == 0.5
    assert plan.consumed == {"water": 0.5, "rice": 1.0}


def test_plan_inputs_fully_supplied():
    prod = _make_production(inputs=(ResourceAmount("water", 1.0),))
    plan = plan_inputs({"water": 100}, prod, owned=3, delta_ms=2000)
    assert plan.efficiency == 1.0
    assert plan.consumed == {"water": 6.0}


def test_pipeline_multiplier_combines_stacks():
    agg = MultiplierAggregator([
        MultiplierStackDef("all_production"),
        MultiplierStackDef("paddy_production", StackType.ADDITIVE),
    ])
    agg.add_multiplier("all_production", ActiveMultiplier("festival", 2.0))
    agg.add_multiplier("paddy_production", ActiveMultiplier("fertilizer", 0.5))
    pipeline = ProductionPipeline(agg)

    prod = _make_production(amount_stack_id="paddy_production")
    assert pipeline.multiplier(prod) == 3.0
    assert pipeline.rates(prod, owned=4) == {"rice": pytest.approx(6.0)}


def test_pipeline_without_aggregator():
    pipeline = ProductionPipeline()
    assert pipeline.multiplier(_make_production()) == 1.0
