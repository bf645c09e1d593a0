"""Step conditions applied to the value grid at stopping times.

A step condition receives the grid (a 1-D ``numpy.ndarray`` indexed by
the layout) and the current time, and mutates the grid in place.  Every
condition is idempotent for a fixed ``t``.  ``FdmStepConditionComposite``
owns an ordered list of conditions plus the union of the stopping times
they need the time-stepping to hit exactly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable, Sequence
import datetime as dt
import logging

import numpy as np

from ..enums import DayCountConvention, ExerciseType
from ..exceptions import UnsupportedFeatureError, ValidationError
from ..utils import calculate_year_fraction

if TYPE_CHECKING:
    from ..instruments import Exercise
    from .inner_value import FdmInnerValueCalculator
    from .meshers import FdmMesherComposite

logger = logging.getLogger(__name__)

__all__ = [
    "StepCondition",
    "FdmAmericanStepCondition",
    "FdmBermudanStepCondition",
    "FdmSnapshotCondition",
    "FdmDividendHandler",
    "FdmStepConditionComposite",
]


class StepCondition(ABC):
    @abstractmethod
    def apply_to(self, values: np.ndarray, t: float) -> None: ...


class FdmAmericanStepCondition(StepCondition):
    """Early exercise at every call: ``V = max(V, inner value)``."""

    def __init__(self, mesher: "FdmMesherComposite", calculator: "FdmInnerValueCalculator") -> None:
        self.mesher = mesher
        self.calculator = calculator

    def apply_to(self, values: np.ndarray, t: float) -> None:
        np.maximum(values, self.calculator.inner_values(t), out=values)


class FdmBermudanStepCondition(StepCondition):
    """Early exercise only at the exercise times, matched exactly."""

    def __init__(
        self,
        exercise_dates: Sequence[dt.date],
        reference_date: dt.date,
        day_count: DayCountConvention,
        mesher: "FdmMesherComposite",
        calculator: "FdmInnerValueCalculator",
    ) -> None:
        self.mesher = mesher
        self.calculator = calculator
        self._exercise_times = np.sort(
            np.array(
                [calculate_year_fraction(reference_date, d, day_count) for d in exercise_dates],
                dtype=float,
            )
        )

    @property
    def exercise_times(self) -> list[float]:
        return self._exercise_times.tolist()

    def apply_to(self, values: np.ndarray, t: float) -> None:
        pos = np.searchsorted(self._exercise_times, t)
        if pos < self._exercise_times.size and self._exercise_times[pos] == t:
            np.maximum(values, self.calculator.inner_values(t), out=values)


class FdmSnapshotCondition(StepCondition):
    """Keeps a copy of the grid as it stands at time ``t``."""

    def __init__(self, t: float) -> None:
        self._t = float(t)
        self._values: np.ndarray | None = None

    @property
    def time(self) -> float:
        return self._t

    @property
    def values(self) -> np.ndarray | None:
        return self._values

    def apply_to(self, values: np.ndarray, t: float) -> None:
        if t == self._t:
            self._values = np.array(values, dtype=float, copy=True)


class FdmDividendHandler(StepCondition):
    """Cash dividend jump ``V(S) <- V(max(S_min, S - D))`` on a log-spot mesh.

    The jump is applied along ``equity_direction`` at each dividend time,
    interpolating linearly in spot units; every other direction is left
    untouched.
    """

    def __init__(
        self,
        dividends: Sequence[tuple[dt.date, float]],
        mesher: "FdmMesherComposite",
        reference_date: dt.date,
        day_count: DayCountConvention = DayCountConvention.ACT_365F,
        equity_direction: int = 0,
    ) -> None:
        # amounts paid on the same date are paid as one jump
        totals: dict[dt.date, float] = {}
        for div_date, amount in dividends:
            totals[div_date] = totals.get(div_date, 0.0) + float(amount)
        self._dividend_dates = sorted(totals)
        self._dividends = [totals[d] for d in self._dividend_dates]
        self._dividend_times = [
            calculate_year_fraction(reference_date, d, day_count) for d in self._dividend_dates
        ]
        self.mesher = mesher
        self.equity_direction = equity_direction
        self._spots = np.exp(mesher.fdm_1d_meshers[equity_direction].locations)
        # direction 0 varies fastest, so it is the last axis of the C-ordered reshape
        self._shape = tuple(reversed(mesher.layout.dim))
        self._axis = len(mesher.layout.dim) - 1 - equity_direction

    @property
    def dividend_times(self) -> list[float]:
        return list(self._dividend_times)

    @property
    def dividend_dates(self) -> list[dt.date]:
        return list(self._dividend_dates)

    @property
    def dividends(self) -> list[float]:
        return list(self._dividends)

    def apply_to(self, values: np.ndarray, t: float) -> None:
        if t not in self._dividend_times:
            return
        amount = self._dividends[self._dividend_times.index(t)]
        s = self._spots
        shifted = np.maximum(s[0], s - amount)
        grid = np.reshape(values, self._shape).copy()
        jumped = np.apply_along_axis(lambda v: np.interp(shifted, s, v), self._axis, grid)
        values[:] = jumped.reshape(-1)
        logger.debug("Applied dividend %.4f at t=%.6f", amount, t)


class FdmStepConditionComposite(StepCondition):
    """Ordered step conditions plus their sorted, de-duplicated stopping times."""

    def __init__(
        self,
        stopping_times: Iterable[Iterable[float]] = (),
        conditions: Iterable[StepCondition] = (),
    ) -> None:
        self._conditions = list(conditions)
        self._stopping_times = sorted({float(t) for times in stopping_times for t in times})

    @property
    def conditions(self) -> list[StepCondition]:
        return self._conditions

    @property
    def stopping_times(self) -> list[float]:
        return self._stopping_times

    def apply_to(self, values: np.ndarray, t: float) -> None:
        for condition in self._conditions:
            condition.apply_to(values, t)

    @classmethod
    def join_conditions(
        cls, snapshot: FdmSnapshotCondition, composite: "FdmStepConditionComposite"
    ) -> "FdmStepConditionComposite":
        """Composite running ``composite`` first and then ``snapshot``."""
        return cls([composite.stopping_times, [snapshot.time]], [composite, snapshot])

    @classmethod
    def vanilla_composite(
        cls,
        dividends: Sequence[tuple[dt.date, float]] | None,
        exercise: "Exercise",
        mesher: "FdmMesherComposite",
        calculator: "FdmInnerValueCalculator",
        reference_date: dt.date,
        day_count: DayCountConvention = DayCountConvention.ACT_365F,
    ) -> "FdmStepConditionComposite":
        """Conditions for a vanilla option: cash dividends, then early exercise."""
        stopping_times: list[list[float]] = []
        conditions: list[StepCondition] = []

        if dividends:
            handler = FdmDividendHandler(dividends, mesher, reference_date, day_count, 0)
            conditions.append(handler)
            stopping_times.append(handler.dividend_times)

        exercise_type = exercise.exercise_type
        if exercise_type not in (ExerciseType.EUROPEAN, ExerciseType.AMERICAN, ExerciseType.BERMUDAN):
            raise UnsupportedFeatureError("exercise type is not supported")
        if exercise_type is ExerciseType.AMERICAN:
            conditions.append(FdmAmericanStepCondition(mesher, calculator))
        elif exercise_type is ExerciseType.BERMUDAN:
            bermudan = FdmBermudanStepCondition(
                exercise.dates, reference_date, day_count, mesher, calculator
            )
            if any(t < 0.0 for t in bermudan.exercise_times):
                raise ValidationError("bermudan exercise dates must not precede the reference date")
            conditions.append(bermudan)
            stopping_times.append(bermudan.exercise_times)

        return cls(stopping_times, conditions)
