"""One-dimensional solvers on top of the backward rollback.

``Fdm1DimSolver`` owns one rollback of a 1-D mesh from maturity to zero and
caches its result; ``interpolate_at`` and the derivatives read a monotone
cubic spline fitted over the rolled-back grid.  The Black-Scholes and
Hull-White solvers wrap it for their model and rebuild it whenever the
model's market data changes.
"""

from __future__ import annotations

from collections.abc import Hashable
from typing import TYPE_CHECKING, Any
import logging
import math

import numpy as np
from scipy.interpolate import CubicHermiteSpline, CubicSpline

from ..exceptions import ValidationError
from ..params import FdmSchemeDesc, FdmSolverDesc
from ..utils import log_timing
from .backward_solver import FdmBackwardSolver
from .operators import FdmBlackScholesOp, FdmHullWhiteOp
from .step_conditions import FdmSnapshotCondition, FdmStepConditionComposite

if TYPE_CHECKING:
    from ..market_environment import BlackScholesProcess, FdmQuantoHelper, HullWhite
    from .operators import FdmLinearOpComposite

logger = logging.getLogger(__name__)

__all__ = [
    "Fdm1DimSolver",
    "FdmBlackScholesSolver",
    "FdmHullWhiteSolver",
    "monotonic_cubic_spline",
]

_ONE_DAY = 1.0 / 365.0


def monotonic_cubic_spline(x: np.ndarray, y: np.ndarray) -> CubicHermiteSpline:
    """Natural cubic spline with Hyman's monotonicity filter on the node slopes.

    Where the data are monotone around a node the slope is clipped to three
    times the smaller neighbouring secant; at a local extremum it is zeroed.
    Smooth data keep the spline's own slopes, so first and second
    derivatives at the nodes stay second-order accurate.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    d = CubicSpline(x, y, bc_type="natural")(x, 1)
    s = np.diff(y) / np.diff(x)

    left = np.concatenate(([s[0]], s))
    right = np.concatenate((s, [s[-1]]))
    monotone = left * right > 0.0
    direction = np.sign(right)
    bound = 3.0 * np.minimum(np.abs(left), np.abs(right))
    clipped = direction * np.minimum(np.maximum(direction * d, 0.0), bound)
    return CubicHermiteSpline(x, y, np.where(monotone, clipped, 0.0))


class Fdm1DimSolver:
    """Lazy rollback of a one-dimensional problem.

    A snapshot is taken shortly before zero so that theta can be read off as
    a finite difference in time.  The result is computed on first use and
    reused until :meth:`invalidate` is called or :meth:`calculate` is
    handed a different generation token.
    """

    def __init__(
        self,
        solver_desc: FdmSolverDesc,
        scheme_desc: FdmSchemeDesc,
        op: "FdmLinearOpComposite",
    ) -> None:
        self.solver_desc = solver_desc
        self.scheme_desc = scheme_desc
        self.op = op

        stopping_times = solver_desc.condition.stopping_times
        first = stopping_times[0] if stopping_times else solver_desc.maturity
        self.theta_condition = FdmSnapshotCondition(0.99 * min(_ONE_DAY, first))
        self.conditions = FdmStepConditionComposite.join_conditions(
            self.theta_condition, solver_desc.condition
        )

        mesher = solver_desc.mesher
        layout = mesher.layout
        self.x = np.array([mesher.location(i, 0) for i in layout], dtype=float)
        self.initial_values = np.array(
            [solver_desc.calculator.avg_inner_value(i, solver_desc.maturity) for i in layout],
            dtype=float,
        )

        self.result_values: np.ndarray | None = None
        self._interpolation: CubicHermiteSpline | None = None
        self._dirty = True
        self._generation: Any = None

    def invalidate(self) -> None:
        self._dirty = True

    def calculate(self, generation: Hashable | None = None) -> None:
        """Roll back unless the cached result is still valid for ``generation``."""
        if not self._dirty and generation == self._generation:
            return
        self._generation = generation
        self._perform_calculations()
        self._dirty = False

    def _perform_calculations(self) -> None:
        desc = self.solver_desc
        rhs = self.initial_values.copy()
        with log_timing(logger, "Fdm1DimSolver rollback", desc.log_timings):
            FdmBackwardSolver(self.op, desc.bc_set, self.conditions, self.scheme_desc).rollback(
                rhs, desc.maturity, 0.0, desc.time_steps, desc.damping_steps
            )
        self.result_values = rhs
        self._interpolation = monotonic_cubic_spline(self.x, rhs)

    def interpolate_at(self, x: float) -> float:
        self.calculate(self._generation)
        return float(self._interpolation(x))

    def derivative_x(self, x: float) -> float:
        self.calculate(self._generation)
        return float(self._interpolation(x, 1))

    def derivative_xx(self, x: float) -> float:
        self.calculate(self._generation)
        return float(self._interpolation(x, 2))

    def theta_at(self, x: float) -> float:
        if not self.conditions.stopping_times[0] > 0.0:
            raise ValidationError("stopping time at zero, can't calculate theta")
        self.calculate(self._generation)
        snapshot = monotonic_cubic_spline(self.x, self.theta_condition.values)
        return (float(snapshot(x)) - self.interpolate_at(x)) / self.theta_condition.time


class FdmBlackScholesSolver:
    """Black-Scholes values and Greeks in spot units on a log-spot mesh."""

    def __init__(
        self,
        process: "BlackScholesProcess",
        strike: float,
        solver_desc: FdmSolverDesc,
        scheme_desc: FdmSchemeDesc | None = None,
        local_vol: bool = False,
        illegal_local_vol_overwrite: float | None = None,
        quanto_helper: "FdmQuantoHelper | None" = None,
    ) -> None:
        self.process = process
        self.strike = strike
        self.quanto_helper = quanto_helper
        self.solver_desc = solver_desc
        self.scheme_desc = scheme_desc if scheme_desc is not None else FdmSchemeDesc.hundsdorfer()
        self.local_vol = local_vol
        self.illegal_local_vol_overwrite = illegal_local_vol_overwrite
        self._solver: Fdm1DimSolver | None = None
        self._generation: Any = None

    def _get_solver(self) -> Fdm1DimSolver:
        generation = self.process.generation
        if self.quanto_helper is not None:
            generation = (generation, self.quanto_helper.generation)
        if self._solver is None or generation != self._generation:
            op = FdmBlackScholesOp(
                self.solver_desc.mesher,
                self.process,
                self.strike,
                self.local_vol,
                self.illegal_local_vol_overwrite,
                quanto_helper=self.quanto_helper,
            )
            self._solver = Fdm1DimSolver(self.solver_desc, self.scheme_desc, op)
            self._generation = generation
            logger.debug("Built Black-Scholes solver for generation %s", generation)
        self._solver.calculate(generation)
        return self._solver

    def value_at(self, s: float) -> float:
        return self._get_solver().interpolate_at(math.log(s))

    def delta_at(self, s: float) -> float:
        return self._get_solver().derivative_x(math.log(s)) / s

    def gamma_at(self, s: float) -> float:
        solver = self._get_solver()
        x = math.log(s)
        return (solver.derivative_xx(x) - solver.derivative_x(x)) / (s * s)

    def theta_at(self, s: float) -> float:
        return self._get_solver().theta_at(math.log(s))


class FdmHullWhiteSolver:
    """Hull-White values on the state ``x = r - alpha(t)``."""

    def __init__(
        self,
        model: "HullWhite",
        solver_desc: FdmSolverDesc,
        scheme_desc: FdmSchemeDesc | None = None,
    ) -> None:
        self.model = model
        self.solver_desc = solver_desc
        self.scheme_desc = scheme_desc if scheme_desc is not None else FdmSchemeDesc.hundsdorfer()
        self._solver: Fdm1DimSolver | None = None
        self._generation: Any = None

    def _get_solver(self) -> Fdm1DimSolver:
        generation = self.model.generation
        if self._solver is None or generation != self._generation:
            op = FdmHullWhiteOp(self.solver_desc.mesher, self.model)
            self._solver = Fdm1DimSolver(self.solver_desc, self.scheme_desc, op)
            self._generation = generation
            logger.debug("Built Hull-White solver for generation %s", generation)
        self._solver.calculate(generation)
        return self._solver

    def value_at(self, x: float) -> float:
        return self._get_solver().interpolate_at(x)
