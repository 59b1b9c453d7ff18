"""Division and averaging that never yield NaN or infinity."""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Sequence, Union

from services.errors import DivisionGuardError


@dataclass(frozen=True, slots=True)
class Defined:
    value: float

    def value_or(self, _fallback: float) -> float:
        return self.value

    def unwrap(self) -> float:
        return self.value


@dataclass(frozen=True, slots=True)
class Undefined:
    reason: str

    def value_or(self, fallback: float) -> float:
        return fallback

    def unwrap(self) -> float:
        raise DivisionGuardError(self.reason)


Ratio = Union[Defined, Undefined]


def guarded_ratio(numerator: float, denominator: float) -> Ratio:
    """Return ``numerator / denominator`` tagged as defined or undefined."""
    if denominator == 0:
        return Undefined("division by zero")
    try:
        result = numerator / denominator
    except OverflowError:
        return Undefined("overflow")
    if not math.isfinite(result):
        return Undefined("non-finite result")
    return Defined(result)


def guarded_mean(values: Sequence[float]) -> Ratio:
    """Arithmetic mean of finite floats, tagged like :func:`guarded_ratio`.

    The sum is taken over exact rationals, so values near the float limits
    never overflow and the mean always lies between the smallest and largest
    value.
    """
    if not values:
        return Undefined("no values")
    return Defined(float(statistics.mean(values)))
