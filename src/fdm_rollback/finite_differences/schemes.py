"""Time-step evolvers for the backward rollback.

Every evolver advances a grid one step backward in time: ``step(a, t)``
maps the values at ``t`` to the values at ``t - dt`` for the step size
set by ``set_step``.  The operator ``L`` is frozen on the step interval via
``op.set_time(max(0, t - dt), t)`` before it is applied or inverted.

Splitting schemes (Douglas, Craig-Sneyd, modified Craig-Sneyd,
Hundsdorfer) do one explicit predictor with the full operator followed by
one implicit correction per direction, solved with the operator's
``solve_splitting``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence
import logging

import numpy as np
from scipy.integrate import solve_ivp
from scipy.sparse.linalg import LinearOperator, bicgstab, gmres

from ..enums import KrylovSolverType
from ..exceptions import ConvergenceError, ValidationError
from .boundary import BoundaryConditionSchemeHelper

if TYPE_CHECKING:
    from .boundary import FdmDirichletBoundary
    from .operators import FdmLinearOpComposite

logger = logging.getLogger(__name__)

__all__ = [
    "TimeStepEvolver",
    "ExplicitEulerScheme",
    "ImplicitEulerScheme",
    "CrankNicolsonScheme",
    "DouglasScheme",
    "CraigSneydScheme",
    "ModifiedCraigSneydScheme",
    "HundsdorferScheme",
    "TrBDF2Scheme",
    "MethodOfLinesScheme",
]

_NEGATIVE_TIME_TOL = 1e-8


class TimeStepEvolver(ABC):
    """Shared state of all evolvers: operator, boundaries and step size."""

    def __init__(
        self,
        op: "FdmLinearOpComposite",
        bc_set: Sequence["FdmDirichletBoundary"] | None = None,
    ) -> None:
        self.op = op
        self.bc_set = BoundaryConditionSchemeHelper(bc_set)
        self.dt: float | None = None

    def set_step(self, dt: float) -> None:
        self.dt = dt

    @abstractmethod
    def step(self, a: np.ndarray, t: float) -> np.ndarray: ...

    def number_of_iterations(self) -> int:
        return 0

    def _begin_step(self, t: float) -> float:
        if self.dt is None:
            raise ValidationError("set_step must be called before step")
        if not t - self.dt > -_NEGATIVE_TIME_TOL:
            raise ValidationError("a step towards negative time given")
        t0 = max(0.0, t - self.dt)
        self.op.set_time(t0, t)
        self.bc_set.set_time(t0)
        return self.dt


class ExplicitEulerScheme(TimeStepEvolver):
    def step(self, a: np.ndarray, t: float, theta: float = 1.0) -> np.ndarray:
        dt = self._begin_step(t)
        self.bc_set.apply_before_applying(self.op)
        y = a + theta * dt * self.op.apply(a)
        self.bc_set.apply_after_applying(y)
        return y


class ImplicitEulerScheme(TimeStepEvolver):
    """Solves ``(I - theta dt L) x = a``.

    A single-direction operator is inverted exactly by its tridiagonal
    splitting solve.  Otherwise BiCGSTAB (or GMRES) is used,
    preconditioned by the operator's splitting solve, and the iterations
    are counted.
    """

    def __init__(
        self,
        op: "FdmLinearOpComposite",
        bc_set: Sequence["FdmDirichletBoundary"] | None = None,
        rel_tol: float = 1e-8,
        solver_type: KrylovSolverType = KrylovSolverType.BICGSTAB,
    ) -> None:
        super().__init__(op, bc_set)
        self.rel_tol = rel_tol
        self.solver_type = solver_type
        self.iterations = 0

    def number_of_iterations(self) -> int:
        return self.iterations

    def step(self, a: np.ndarray, t: float, theta: float = 1.0) -> np.ndarray:
        dt = self._begin_step(t)
        rhs = np.array(a, dtype=float, copy=True)
        self.bc_set.apply_before_solving(self.op, rhs)
        x = self._solve(rhs, theta * dt)
        self.bc_set.apply_after_solving(x)
        return x

    def _solve(self, rhs: np.ndarray, beta: float) -> np.ndarray:
        if self.op.size() == 1:
            return self.op.solve_splitting(0, rhs, -beta)
        x, iterations = _krylov_solve(self.op, rhs, beta, self.rel_tol, self.solver_type)
        self.iterations += iterations
        return x


def _krylov_solve(
    op: "FdmLinearOpComposite",
    rhs: np.ndarray,
    beta: float,
    rel_tol: float,
    solver_type: KrylovSolverType = KrylovSolverType.BICGSTAB,
) -> tuple[np.ndarray, int]:
    """Solve ``(I - beta L) x = rhs`` iteratively; returns ``(x, iterations)``."""
    n = rhs.size
    system = LinearOperator((n, n), matvec=lambda r: r - beta * op.apply(r), dtype=float)
    precond = LinearOperator((n, n), matvec=lambda r: op.preconditioner(r, -beta), dtype=float)
    counter = [0]

    def _count(_arg) -> None:
        counter[0] += 1

    if solver_type is KrylovSolverType.GMRES:
        x, info = gmres(
            system,
            rhs,
            x0=rhs,
            rtol=rel_tol,
            restart=max(10, n // 10),
            maxiter=max(10, n),
            M=precond,
            callback=_count,
            callback_type="pr_norm",
        )
    else:
        x, info = bicgstab(
            system, rhs, x0=rhs, rtol=rel_tol, maxiter=max(10, n), M=precond, callback=_count
        )
    if info != 0:
        raise ConvergenceError(f"{solver_type.name} did not converge (info={info})")
    return x, counter[0]


class CrankNicolsonScheme(TimeStepEvolver):
    """Explicit step with weight ``1 - theta`` followed by an implicit one with ``theta``."""

    def __init__(
        self,
        theta: float,
        op: "FdmLinearOpComposite",
        bc_set: Sequence["FdmDirichletBoundary"] | None = None,
        rel_tol: float = 1e-8,
    ) -> None:
        super().__init__(op, bc_set)
        self.theta = theta
        self.explicit = ExplicitEulerScheme(op, bc_set)
        self.implicit = ImplicitEulerScheme(op, bc_set, rel_tol)

    def set_step(self, dt: float) -> None:
        super().set_step(dt)
        self.explicit.set_step(dt)
        self.implicit.set_step(dt)

    def number_of_iterations(self) -> int:
        return self.implicit.number_of_iterations()

    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        if self.dt is not None and not t - self.dt > -_NEGATIVE_TIME_TOL:
            raise ValidationError("a step towards negative time given")
        if self.theta != 1.0:
            a = self.explicit.step(a, t, 1.0 - self.theta)
        if self.theta != 0.0:
            a = self.implicit.step(a, t, self.theta)
        return a


class DouglasScheme(TimeStepEvolver):
    def __init__(
        self,
        theta: float,
        op: "FdmLinearOpComposite",
        bc_set: Sequence["FdmDirichletBoundary"] | None = None,
    ) -> None:
        super().__init__(op, bc_set)
        self.theta = theta

    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        dt = self._begin_step(t)
        op, theta = self.op, self.theta

        self.bc_set.apply_before_applying(op)
        y = a + dt * op.apply(a)
        self.bc_set.apply_after_applying(y)

        for i in range(op.size()):
            rhs = y - theta * dt * op.apply_direction(i, a)
            y = op.solve_splitting(i, rhs, -theta * dt)

        self.bc_set.apply_after_solving(y)
        return y


class CraigSneydScheme(TimeStepEvolver):
    def __init__(
        self,
        theta: float,
        mu: float,
        op: "FdmLinearOpComposite",
        bc_set: Sequence["FdmDirichletBoundary"] | None = None,
    ) -> None:
        super().__init__(op, bc_set)
        self.theta = theta
        self.mu = mu

    def _predict(self, a: np.ndarray, dt: float) -> tuple[np.ndarray, np.ndarray]:
        op, theta = self.op, self.theta
        self.bc_set.apply_before_applying(op)
        y = a + dt * op.apply(a)
        self.bc_set.apply_after_applying(y)
        y0 = y
        for i in range(op.size()):
            rhs = y - theta * dt * op.apply_direction(i, a)
            y = op.solve_splitting(i, rhs, -theta * dt)
        return y0, y

    def _correct(self, yt: np.ndarray, base: np.ndarray, dt: float) -> np.ndarray:
        op, theta = self.op, self.theta
        self.bc_set.apply_after_applying(yt)
        for i in range(op.size()):
            rhs = yt - theta * dt * op.apply_direction(i, base)
            yt = op.solve_splitting(i, rhs, -theta * dt)
        self.bc_set.apply_after_solving(yt)
        return yt

    def _mixed_correction(self, a: np.ndarray, y: np.ndarray, dt: float) -> np.ndarray:
        return self.mu * dt * self.op.apply_mixed(y - a)

    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        dt = self._begin_step(t)
        y0, y = self._predict(a, dt)
        self.bc_set.apply_before_applying(self.op)
        yt = y0 + self._mixed_correction(a, y, dt)
        return self._correct(yt, a, dt)


class ModifiedCraigSneydScheme(CraigSneydScheme):
    """Craig-Sneyd with an extra ``(1/2 - mu)`` correction by the full operator."""

    def _mixed_correction(self, a: np.ndarray, y: np.ndarray, dt: float) -> np.ndarray:
        diff = y - a
        return self.mu * dt * self.op.apply_mixed(diff) + (0.5 - self.mu) * dt * self.op.apply(diff)


class HundsdorferScheme(CraigSneydScheme):
    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        dt = self._begin_step(t)
        y0, y = self._predict(a, dt)
        self.bc_set.apply_before_applying(self.op)
        yt = y0 + self.mu * dt * self.op.apply(y - a)
        return self._correct(yt, y, dt)


class TrBDF2Scheme(TimeStepEvolver):
    """Trapezoidal step of ``alpha dt`` followed by a BDF2 step.

    The BDF2 stage solves ``(I - beta L) x = f`` with
    ``beta = (1 - alpha) / (2 - alpha) dt``, iteratively with
    ``solver_type`` when the operator has more than one direction.
    """

    def __init__(
        self,
        alpha: float,
        op: "FdmLinearOpComposite",
        trapezoidal: TimeStepEvolver,
        bc_set: Sequence["FdmDirichletBoundary"] | None = None,
        rel_tol: float = 1e-8,
        solver_type: KrylovSolverType = KrylovSolverType.BICGSTAB,
    ) -> None:
        super().__init__(op, bc_set)
        self.alpha = alpha
        self.trapezoidal = trapezoidal
        self.rel_tol = rel_tol
        self.solver_type = solver_type
        self.beta: float | None = None
        self.iterations = 0

    def set_step(self, dt: float) -> None:
        super().set_step(dt)
        self.beta = (1.0 - self.alpha) / (2.0 - self.alpha) * dt

    def number_of_iterations(self) -> int:
        return self.iterations

    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        if self.dt is None:
            raise ValidationError("set_step must be called before step")
        if not t - self.dt > -_NEGATIVE_TIME_TOL:
            raise ValidationError("a step towards negative time given")
        alpha = self.alpha

        self.trapezoidal.set_step(self.dt * alpha)
        f_star = self.trapezoidal.step(a, t)

        t0 = max(0.0, t - self.dt)
        self.op.set_time(t0, t)
        self.bc_set.set_time(t0)

        f = (f_star / alpha - (1.0 - alpha) ** 2 / alpha * a) / (2.0 - alpha)
        self.bc_set.apply_before_solving(self.op, f)

        if self.op.size() == 1:
            x = self.op.solve_splitting(0, f, -self.beta)
        else:
            x, iterations = _krylov_solve(self.op, f, self.beta, self.rel_tol, self.solver_type)
            self.iterations += iterations

        self.bc_set.apply_after_solving(x)
        return x


class MethodOfLinesScheme(TimeStepEvolver):
    """Integrates ``dV/dt = -L V`` from ``t`` down to ``t - dt`` with adaptive RK45."""

    def __init__(
        self,
        eps: float,
        rel_init_step_size: float,
        op: "FdmLinearOpComposite",
        bc_set: Sequence["FdmDirichletBoundary"] | None = None,
    ) -> None:
        super().__init__(op, bc_set)
        self.eps = eps
        self.rel_init_step_size = rel_init_step_size

    def _rhs(self, t: float, r: np.ndarray) -> np.ndarray:
        self.op.set_time(t, t + 0.0001)
        self.bc_set.apply_before_applying(self.op)
        dxdt = -self.op.apply(r)
        self.bc_set.apply_after_applying(dxdt)
        return dxdt

    def step(self, a: np.ndarray, t: float) -> np.ndarray:
        if self.dt is None:
            raise ValidationError("set_step must be called before step")
        if not t - self.dt > -_NEGATIVE_TIME_TOL:
            raise ValidationError("a step towards negative time given")
        t_end = max(0.0, t - self.dt)
        sol = solve_ivp(
            self._rhs,
            (t, t_end),
            np.asarray(a, dtype=float),
            method="RK45",
            rtol=self.eps,
            atol=self.eps,
            first_step=self.rel_init_step_size * self.dt,
        )
        if not sol.success:
            raise ConvergenceError(f"method of lines integration failed: {sol.message}")
        y = sol.y[:, -1].copy()
        self.bc_set.set_time(t_end)
        self.bc_set.apply_after_solving(y)
        return y
