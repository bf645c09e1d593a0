import math

import numpy as np

from fdm_rollback.finite_differences.meshers import FdmMesherComposite, Uniform1dMesher
from fdm_rollback.finite_differences.schemes import TimeStepEvolver
from fdm_rollback.finite_differences.step_conditions import StepCondition


def uniform_log_mesher(spot: float = 100.0, width: float = 1.5, size: int = 121) -> FdmMesherComposite:
    """Uniform log-spot mesh, symmetric around ``log(spot)`` so that the spot is a node."""
    x0 = math.log(spot)
    return FdmMesherComposite(Uniform1dMesher(x0 - width, x0 + width, size))


class RecordingCondition(StepCondition):
    """Remembers every time it was applied at; leaves the grid alone."""

    def __init__(self):
        self.times: list[float] = []

    def apply_to(self, values: np.ndarray, t: float) -> None:
        self.times.append(t)


class RecordingEvolver(TimeStepEvolver):
    """Identity evolver recording ``(t, dt)`` for every step."""

    def __init__(self):
        self.dt = None
        self.steps: list[tuple[float, float]] = []

    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        self.steps.append((t, self.dt))
        return np.array(a, copy=True)
