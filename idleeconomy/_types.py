from __future__ import annotations

import math
import operator
import time
from typing import Callable, Mapping

CurveContext = Mapping[str, float]
Clock = Callable[[], float]

_OPS: dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}


def compare(left: float, op: str, right: float) -> bool:
    """Compare two values using a string operator."""
    fn = _OPS.get(op)
    if fn is None:
        raise ValueError(f"Unknown operator: {op!r}. Expected one of {list(_OPS)}")
    return fn(left, right)


def now_ms() -> float:
    """Wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


def is_finite(value: float) -> bool:
    return not (math.isnan(value) or math.isinf(value))


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds, for measuring tick deltas."""
    return time.monotonic() * 1000.0
