"""Rice farm example catalog: a paddy economy with a water-fed buffalo and a mill."""
from __future__ import annotations

from idleeconomy.building import BuildingDef, ProductionDef, ProductionOutput, ResourceAmount
from idleeconomy.catalog import Catalog, EngineConfig, default_presets
from idleeconomy.curve import CurvePreset, StepCurve, StepThreshold
from idleeconomy.multiplier import MultiplierStackDef, StackType
from idleeconomy.requirement import Req
from idleeconomy.resource import ResourceDef
from idleeconomy.upgrade import MultiplierEffect, SynergyDef, UpgradeDef


def define_catalog() -> Catalog:
    return Catalog(
        name="Rice Farm",
        config=EngineConfig(),
        resources=[
            ResourceDef("rice", "Rice", initial_amount=60),
            ResourceDef("river_water", "River Water"),
            ResourceDef("rice_flour", "Rice Flour"),
            ResourceDef("lotus_tokens", "Lotus Tokens", persists_on_prestige=True),
        ],
        curve_presets=default_presets() + [
            CurvePreset(
                "cost_tiered",
                StepCurve((
                    StepThreshold(0, 1.0),
                    StepThreshold(5, 2.0),
                    StepThreshold(10, 5.0),
                    StepThreshold(25, 20.0),
                ), input_var="owned"),
                "Tiered cost",
            ),
        ],
        stacks=[
            MultiplierStackDef("paddy_production", StackType.ADDITIVE, name="Paddy production"),
            MultiplierStackDef("harvest_luck", StackType.DIMINISHING, name="Harvest luck"),
        ],
        buildings=[
            BuildingDef(
                id="paddy_field",
                name="Paddy Field",
                base_cost=[ResourceAmount("rice", 50)],
                cost_curve="cost_standard",
                production=ProductionDef(
                    outputs=(ProductionOutput("rice", 0.5),),
                    base_interval_ms=1000,
                    amount_stack_id="paddy_production",
                ),
                category="production",
            ),
            BuildingDef(
                id="family_worker",
                name="Family Member",
                base_cost=[ResourceAmount("rice", 200)],
                cost_curve="cost_aggressive",
                production=ProductionDef(
                    outputs=(ProductionOutput("rice", 2.0),),
                    base_interval_ms=1000,
                    idle_efficiency=0.5,
                ),
                unlock_requirements=[Req.resource_lifetime("rice", 100)],
                max_owned=10,
                category="automation",
            ),
            BuildingDef(
                id="well",
                name="Village Well",
                base_cost=[ResourceAmount("rice", 300)],
                cost_curve="cost_gentle",
                production=ProductionDef(
                    outputs=(ProductionOutput("river_water", 1.0),),
                    base_interval_ms=2000,
                ),
                unlock_requirements=[Req.building_owned("paddy_field", 2)],
                category="production",
            ),
            BuildingDef(
                id="buffalo",
                name="Water Buffalo",
                base_cost=[ResourceAmount("rice", 1000)],
                cost_curve="cost_tiered",
                production=ProductionDef(
                    outputs=(ProductionOutput("rice", 10.0),),
                    inputs=(ResourceAmount("river_water", 0.5),),
                    base_interval_ms=1000,
                ),
                unlock_requirements=[
                    Req.all(
                        Req.building_owned("paddy_field", 3),
                        Req.building_owned("well", 1),
                    ),
                ],
                category="automation",
            ),
            BuildingDef(
                id="rice_mill",
                name="Rice Mill",
                base_cost=[ResourceAmount("rice", 2500)],
                production=ProductionDef(
                    outputs=(ProductionOutput("rice_flour", 1.0),),
                    inputs=(ResourceAmount("rice", 5.0),),
                    base_interval_ms=5000,
                ),
                unlock_requirements=[Req.resource_lifetime("rice", 5000)],
                category="processing",
            ),
            BuildingDef(
                id="lotus_shrine",
                name="Lotus Shrine",
                base_cost=[ResourceAmount("rice", 10000), ResourceAmount("rice_flour", 50)],
                production=ProductionDef(
                    outputs=(ProductionOutput("lotus_tokens", 1.0, chance=0.1),),
                    base_interval_ms=10000,
                ),
                unlock_requirements=[Req.building_owned("rice_mill", 1)],
                max_owned=1,
                resets_on_prestige=False,
                category="special",
            ),
        ],
        upgrades=[
            UpgradeDef(
                id="better_seeds",
                name="Better Seeds",
                cost=[ResourceAmount("rice", 200)],
                effects=(MultiplierEffect("paddy_production", 0.25),),
                unlock_requirements=[Req.building_owned("paddy_field", 1)],
                category="production",
            ),
            UpgradeDef(
                id="irrigation_channels",
                name="Irrigation Channels",
                cost=[ResourceAmount("rice", 1500)],
                effects=(MultiplierEffect("all_production", 1.1),),
                unlock_requirements=[Req.building_owned("well", 1)],
                prerequisites=("better_seeds",),
                category="production",
            ),
            UpgradeDef(
                id="lotus_blessing",
                name="Lotus Blessing",
                cost=[ResourceAmount("lotus_tokens", 5)],
                effects=(MultiplierEffect("all_production", 1.25),),
                unlock_requirements=[Req.prestige_level(1)],
                resets_on_prestige=False,
                category="prestige",
            ),
        ],
        synergies=[
            # Each buffalo ploughs the paddies: +10% paddy production
            SynergyDef("buffalo", "paddy_production", per_owned=0.1, base=0.0, name="Buffalo"),
        ],
    )
