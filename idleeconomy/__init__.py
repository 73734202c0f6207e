# idleeconomy: economy core for idle games (curves, multipliers, production, offline, saves)

from idleeconomy._types import CurveContext, compare
from idleeconomy.errors import (
    IdleEconomyError,
    SaveError,
    CorruptionError,
    UnrecoverableSaveError,
)
from idleeconomy.events import EventBus, GameEvent, SubscriptionScope
from idleeconomy.curve import (
    Curve,
    ConstantCurve,
    LinearCurve,
    ExponentialCurve,
    ExponentialOffsetCurve,
    PolynomialCurve,
    LogarithmicCurve,
    SigmoidCurve,
    StepCurve,
    StepThreshold,
    FormulaCurve,
    CompoundCurve,
    CompoundOperation,
    CurvePreset,
    CurveEvaluator,
    curve_from_config,
)
from idleeconomy.condition import Condition, ConditionContext, Cond
from idleeconomy.multiplier import (
    StackType,
    MultiplierStackDef,
    ActiveMultiplier,
    MultiplierAggregator,
)
from idleeconomy.requirement import Requirement, Req, RequirementRegistry
from idleeconomy.resource import ResourceDef, ResourceState
from idleeconomy.building import (
    ResourceAmount,
    ProductionOutput,
    ProductionDef,
    BuildingDef,
    BuildingState,
    BuildingInfo,
)
from idleeconomy.upgrade import (
    MultiplierEffect,
    UpgradeDef,
    SynergyDef,
    UpgradeInfo,
    UpgradeSystem,
)
from idleeconomy.catalog import Catalog, EngineConfig
from idleeconomy.state import GameState, Statistics
from idleeconomy.prestige import PrestigeResult
from idleeconomy.engine import ProductionEngine
from idleeconomy.offline import OfflineResult, compute_offline_gain, apply_offline_gain
from idleeconomy.save import (
    SaveData,
    SaveManager,
    MemorySaveStore,
    FileSaveStore,
    MigrationRegistry,
)
from idleeconomy.loop import GameLoop
from idleeconomy.game import Game, create_game
from idleeconomy.simulation import Simulation, SimulationResult, offline_parity

__all__ = [
    # Types
    "CurveContext",
    "compare",
    # Errors
    "IdleEconomyError",
    "SaveError",
    "CorruptionError",
    "UnrecoverableSaveError",
    # Events
    "EventBus",
    "GameEvent",
    "SubscriptionScope",
    # Curves
    "Curve",
    "ConstantCurve",
    "LinearCurve",
    "ExponentialCurve",
    "ExponentialOffsetCurve",
    "PolynomialCurve",
    "LogarithmicCurve",
    "SigmoidCurve",
    "StepCurve",
    "StepThreshold",
    "FormulaCurve",
    "CompoundCurve",
    "CompoundOperation",
    "CurvePreset",
    "CurveEvaluator",
    "curve_from_config",
    # Conditions & requirements
    "Condition",
    "ConditionContext",
    "Cond",
    "Requirement",
    "Req",
    "RequirementRegistry",
    # Multipliers
    "StackType",
    "MultiplierStackDef",
    "ActiveMultiplier",
    "MultiplierAggregator",
    # Data model
    "ResourceDef",
    "ResourceState",
    "ResourceAmount",
    "ProductionOutput",
    "ProductionDef",
    "BuildingDef",
    "BuildingState",
    "BuildingInfo",
    "MultiplierEffect",
    "UpgradeDef",
    "SynergyDef",
    "UpgradeInfo",
    "Catalog",
    "EngineConfig",
    # State
    "GameState",
    "Statistics",
    "PrestigeResult",
    # Engine
    "ProductionEngine",
    "UpgradeSystem",
    "GameLoop",
    "Game",
    "create_game",
    # Offline
    "OfflineResult",
    "compute_offline_gain",
    "apply_offline_gain",
    # Saves
    "SaveData",
    "SaveManager",
    "MemorySaveStore",
    "FileSaveStore",
    "MigrationRegistry",
    # Simulation
    "Simulation",
    "SimulationResult",
    "offline_parity",
]
