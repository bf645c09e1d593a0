"""Time-stepping driver that lands on every stopping time exactly."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable
import math

import numpy as np

if TYPE_CHECKING:
    from .schemes import TimeStepEvolver
    from .step_conditions import StepCondition

__all__ = ["FiniteDifferenceModel"]

_SNAP_TOL = math.sqrt(np.finfo(float).eps)


class FiniteDifferenceModel:
    """Rolls a grid back over ``steps`` regular steps with one evolver.

    A stopping time inside a regular step splits it: the evolver takes a
    partial step onto the stopping time, the condition is applied there,
    and the remainder of the step is completed before the condition is
    applied again at the end of the regular step.
    """

    def __init__(self, evolver: "TimeStepEvolver", stopping_times: Iterable[float] = ()) -> None:
        self.evolver = evolver
        self.stopping_times = sorted({float(t) for t in stopping_times})

    def rollback(
        self,
        values: np.ndarray,
        from_time: float,
        to_time: float,
        steps: int,
        condition: "StepCondition | None" = None,
        apply_at_start: bool = True,
    ) -> np.ndarray:
        """Roll back over ``steps`` regular steps.

        With ``apply_at_start`` the condition is applied at ``from_time`` when
        it is the latest stopping time; pass False when a previous phase
        already ended on it.
        """
        if steps == 0:
            return values
        dt = (from_time - to_time) / steps
        t = from_time
        self.evolver.set_step(dt)

        if (
            apply_at_start
            and condition is not None
            and self.stopping_times
            and self.stopping_times[-1] == from_time
        ):
            condition.apply_to(values, from_time)

        for _ in range(steps):
            now = t
            next_t = t - dt
            if abs(to_time - next_t) < _SNAP_TOL:
                next_t = to_time

            hit = False
            for s in reversed(self.stopping_times):
                if next_t <= s < now:
                    hit = True
                    self.evolver.set_step(now - s)
                    values = self.evolver.step(values, now)
                    if condition is not None:
                        condition.apply_to(values, s)
                    now = s

            if hit:
                if now > next_t:
                    self.evolver.set_step(now - next_t)
                    values = self.evolver.step(values, now)
                    if condition is not None:
                        condition.apply_to(values, next_t)
                self.evolver.set_step(dt)
            else:
                values = self.evolver.step(values, now)
                if condition is not None:
                    condition.apply_to(values, next_t)

            t = next_t
        return values
