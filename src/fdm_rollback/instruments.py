"""Payoffs and exercise schedules consumed by the step conditions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence
import datetime as dt

import numpy as np

from .enums import ExerciseType, OptionType
from .exceptions import ConfigurationError, ValidationError

__all__ = ["PlainVanillaPayoff", "Exercise"]


@dataclass(frozen=True, slots=True)
class PlainVanillaPayoff:
    """max(S - K, 0) for calls, max(K - S, 0) for puts; vectorized."""

    option_type: OptionType
    strike: float

    def __post_init__(self) -> None:
        if isinstance(self.option_type, str):
            object.__setattr__(self, "option_type", OptionType(self.option_type))
        if not isinstance(self.option_type, OptionType):
            raise ConfigurationError(f"option_type must be an OptionType, got {self.option_type}")
        if self.strike < 0.0:
            raise ValidationError(f"strike must be non-negative, got {self.strike}")

    def __call__(self, price: float | np.ndarray) -> float | np.ndarray:
        if self.option_type is OptionType.CALL:
            return np.maximum(price - self.strike, 0.0)
        return np.maximum(self.strike - price, 0.0)


@dataclass(frozen=True, slots=True)
class Exercise:
    """Exercise style plus its (sorted) dates.

    European and American exercises carry the expiry as their last date.
    Bermudan exercises carry every exercise date.
    """

    exercise_type: ExerciseType
    dates: tuple[dt.date, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.dates:
            raise ValidationError("exercise requires at least one date")
        object.__setattr__(self, "dates", tuple(sorted(self.dates)))

    @classmethod
    def european(cls, expiry: dt.date) -> "Exercise":
        return cls(ExerciseType.EUROPEAN, (expiry,))

    @classmethod
    def american(cls, expiry: dt.date) -> "Exercise":
        return cls(ExerciseType.AMERICAN, (expiry,))

    @classmethod
    def bermudan(cls, dates: Sequence[dt.date]) -> "Exercise":
        return cls(ExerciseType.BERMUDAN, tuple(dates))

    @property
    def last_date(self) -> dt.date:
        return self.dates[-1]
