from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Iterable, Mapping, Union

from idleeconomy._types import CurveContext, is_finite
from idleeconomy.expression import evaluate_expression

logger = logging.getLogger(__name__)


class Curve(ABC):
    """A parametric formula mapping a variable context to one number."""

    type: ClassVar[str] = ""

    @abstractmethod
    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float: ...


CurveRef = Union[Curve, str]


def _var(context: CurveContext, name: str) -> float:
    if name in context:
        return float(context[name])
    logger.warning("Variable %r not found in curve context, using 0", name)
    return 0.0


# ── Curve kinds ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConstantCurve(Curve):
    type: ClassVar[str] = "constant"

    value: float = 1.0

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        return self.value


@dataclass(frozen=True)
class LinearCurve(Curve):
    """base + rate * count"""

    type: ClassVar[str] = "linear"

    base: float = 0.0
    rate: float = 1.0
    count_var: str = "owned"

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        return self.base + self.rate * _var(context, self.count_var)


@dataclass(frozen=True)
class ExponentialCurve(Curve):
    """base * rate^count"""

    type: ClassVar[str] = "exponential"

    base: float = 1.0
    rate: float = 1.15
    count_var: str = "owned"

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        return self.base * math.pow(self.rate, _var(context, self.count_var))


@dataclass(frozen=True)
class ExponentialOffsetCurve(Curve):
    """base * rate^(count + offset)"""

    type: ClassVar[str] = "exponential_offset"

    base: float = 1.0
    rate: float = 1.15
    offset: float = 0.0
    count_var: str = "owned"

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        count = _var(context, self.count_var)
        return self.base * math.pow(self.rate, count + self.offset)


@dataclass(frozen=True)
class PolynomialCurve(Curve):
    """coefficient * value^power"""

    type: ClassVar[str] = "polynomial"

    coefficient: float = 1.0
    power: float = 1.0
    value_var: str = "value"

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        return self.coefficient * math.pow(_var(context, self.value_var), self.power)


@dataclass(frozen=True)
class LogarithmicCurve(Curve):
    """coefficient * log_logBase(value + offset)"""

    type: ClassVar[str] = "logarithmic"

    coefficient: float = 1.0
    log_base: float = 10.0
    offset: float = 1.0
    value_var: str = "value"

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        value = _var(context, self.value_var)
        return self.coefficient * (math.log(value + self.offset) / math.log(self.log_base))


@dataclass(frozen=True)
class SigmoidCurve(Curve):
    """max / (1 + e^(-steepness * (value - midpoint)))"""

    type: ClassVar[str] = "sigmoid"

    max: float = 1.0
    steepness: float = 1.0
    midpoint: float = 0.0
    value_var: str = "value"

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        value = _var(context, self.value_var)
        exponent = -self.steepness * (value - self.midpoint)
        # Far below the midpoint the curve is indistinguishable from 0
        if exponent > 700:
            return 0.0
        return self.max / (1.0 + math.exp(exponent))


@dataclass(frozen=True)
class StepThreshold:
    threshold: float
    value: float


@dataclass(frozen=True)
class StepCurve(Curve):
    """Value of the highest threshold not exceeding the input, else 0."""

    type: ClassVar[str] = "step"

    steps: tuple[StepThreshold, ...] = ()
    input_var: str = "value"

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.steps, key=lambda s: s.threshold))
        object.__setattr__(self, "steps", ordered)

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        value = _var(context, self.input_var)
        result = 0.0
        for step in self.steps:
            if value >= step.threshold:
                result = step.value
            else:
                break
        return result


@dataclass(frozen=True)
class FormulaCurve(Curve):
    """Free-form arithmetic over context variables (see idleeconomy.expression)."""

    type: ClassVar[str] = "formula"

    expression: str = "0"

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        return evaluate_expression(self.expression, context)


class CompoundOperation(Enum):
    ADD = "add"
    MULTIPLY = "multiply"
    MIN = "min"
    MAX = "max"
    SUBTRACT = "subtract"
    DIVIDE = "divide"


@dataclass(frozen=True)
class CompoundCurve(Curve):
    """Combines the results of sub-curves, evaluated in order."""

    type: ClassVar[str] = "compound"

    operation: CompoundOperation = CompoundOperation.ADD
    curves: tuple[CurveRef, ...] = ()

    def compute(self, context: CurveContext, evaluator: CurveEvaluator) -> float:
        values = [evaluator.evaluate(c, context) for c in self.curves]
        if not values:
            return 0.0

        op = self.operation
        if op is CompoundOperation.ADD:
            return math.fsum(values)
        if op is CompoundOperation.MULTIPLY:
            return math.prod(values)
        if op is CompoundOperation.MIN:
            return min(values)
        if op is CompoundOperation.MAX:
            return max(values)
        if op is CompoundOperation.SUBTRACT:
            return values[0] - math.fsum(values[1:])
        if op is CompoundOperation.DIVIDE:
            divisor = math.prod(values[1:])
            return 0.0 if divisor == 0 else values[0] / divisor
        return values[0]


@dataclass(frozen=True)
class CurvePreset:
    """A named curve that catalog entries can reference by id."""

    id: str
    curve: Curve
    name: str = ""
    description: str = ""


# ── Evaluator ────────────────────────────────────────────────────────


class _PresetCycle(Exception):
    pass


class CurveEvaluator:
    """Resolves curve references and evaluates them. Never raises."""

    def __init__(self, presets: Iterable[CurvePreset] = ()) -> None:
        self._presets: dict[str, Curve] = {}
        # Preset ids currently being evaluated
        self._active: set[str] = set()
        self.load_presets(presets)

    def load_presets(self, presets: Iterable[CurvePreset]) -> None:
        for preset in presets:
            self._presets[preset.id] = preset.curve

    def has_preset(self, preset_id: str) -> bool:
        return preset_id in self._presets

    def resolve(self, curve_ref: CurveRef) -> Curve:
        """Turn a preset id into its curve; unknown ids become constant 1."""
        if isinstance(curve_ref, str):
            curve = self._presets.get(curve_ref)
            if curve is None:
                logger.warning("Unknown curve preset %r, using constant 1", curve_ref)
                return ConstantCurve(1.0)
            return curve
        return curve_ref

    def evaluate(
        self, curve_ref: CurveRef, context: CurveContext, default: float = 0.0
    ) -> float:
        """Evaluate a curve.

        Arithmetic failures, non-finite results and presets that reference
        themselves through compound curves give *default*.
        """
        try:
            return self._evaluate_ref(curve_ref, context, default)
        except _PresetCycle as exc:
            # Unwind to the outermost preset on the cycle
            if self._active:
                raise
            logger.warning("%s, using default", exc)
            return default

    def _evaluate_ref(self, curve_ref: CurveRef, context: CurveContext, default: float) -> float:
        if isinstance(curve_ref, str):
            if curve_ref in self._active:
                raise _PresetCycle(f"Curve preset {curve_ref!r} references itself")
            self._active.add(curve_ref)
            try:
                return self._compute(self.resolve(curve_ref), context, default)
            finally:
                self._active.discard(curve_ref)
        return self._compute(curve_ref, context, default)

    def _compute(self, curve: Curve, context: CurveContext, default: float) -> float:
        try:
            result = curve.compute(context, self)
        except (ArithmeticError, ValueError) as exc:
            logger.warning("%s curve failed to evaluate: %s", curve.type, exc)
            return default
        if not is_finite(result):
            logger.warning("%s curve returned non-finite result %r", curve.type, result)
            return default
        return result


# ── Config loading ───────────────────────────────────────────────────


_CURVE_TYPES: dict[str, type[Curve]] = {
    cls.type: cls
    for cls in (
        ConstantCurve,
        LinearCurve,
        ExponentialCurve,
        ExponentialOffsetCurve,
        PolynomialCurve,
        LogarithmicCurve,
        SigmoidCurve,
        StepCurve,
        FormulaCurve,
        CompoundCurve,
    )
}

# camelCase keys accepted from designer-authored JSON
_KEY_ALIASES = {
    "countVar": "count_var",
    "valueVar": "value_var",
    "inputVar": "input_var",
    "logBase": "log_base",
}


def curve_from_config(data: CurveRef | Mapping[str, Any]) -> CurveRef:
    """Build a curve (or preset reference) from a config mapping.

    Raises ValueError for an unknown curve type; catalogs are validated at
    load time rather than at evaluation time.
    """
    if isinstance(data, (str, Curve)):
        return data

    params = {_KEY_ALIASES.get(k, k): v for k, v in data.items() if k != "type"}
    kind = data.get("type")
    cls = _CURVE_TYPES.get(kind)  # type: ignore[arg-type]
    if cls is None:
        raise ValueError(f"Unknown curve type: {kind!r}")

    if cls is StepCurve:
        params["steps"] = tuple(
            StepThreshold(float(s["threshold"]), float(s["value"]))
            for s in params.get("steps", ())
        )
    elif cls is CompoundCurve:
        params["operation"] = CompoundOperation(params.get("operation", "add"))
        params["curves"] = tuple(curve_from_config(c) for c in params.get("curves", ()))
    return cls(**params)


def preset_from_config(data: Mapping[str, Any]) -> CurvePreset:
    return CurvePreset(
        id=data["id"],
        curve=curve_from_config(data["curve"]),  # type: ignore[arg-type]
        name=data.get("name", ""),
        description=data.get("description", ""),
    )


def preset_references(curve_ref: CurveRef) -> set[str]:
    """Preset ids a curve refers to, including through nested compounds."""
    if isinstance(curve_ref, str):
        return {curve_ref}
    refs: set[str] = set()
    if isinstance(curve_ref, CompoundCurve):
        for sub in curve_ref.curves:
            refs |= preset_references(sub)
    return refs
