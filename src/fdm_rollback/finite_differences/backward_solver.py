"""Backward solver: damping phase plus the configured evolution scheme."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Sequence
import logging

import numpy as np

from ..enums import FdmSchemeType
from ..exceptions import UnsupportedFeatureError, ValidationError
from ..params import FdmSchemeDesc
from .model import FiniteDifferenceModel
from .schemes import (
    CraigSneydScheme,
    CrankNicolsonScheme,
    DouglasScheme,
    ExplicitEulerScheme,
    HundsdorferScheme,
    ImplicitEulerScheme,
    MethodOfLinesScheme,
    ModifiedCraigSneydScheme,
    TimeStepEvolver,
    TrBDF2Scheme,
)

if TYPE_CHECKING:
    from .boundary import FdmDirichletBoundary
    from .operators import FdmLinearOpComposite
    from .step_conditions import FdmStepConditionComposite

logger = logging.getLogger(__name__)

__all__ = ["FdmBackwardSolver", "make_evolver"]

_EvolverFactory = Callable[
    [FdmSchemeDesc, "FdmLinearOpComposite", Sequence["FdmDirichletBoundary"]], TimeStepEvolver
]


def _tr_bdf2(desc: FdmSchemeDesc, op, bc_set) -> TimeStepEvolver:
    trapezoidal_desc = FdmSchemeDesc.craig_sneyd()
    trapezoidal = CraigSneydScheme(trapezoidal_desc.theta, trapezoidal_desc.mu, op, bc_set)
    return TrBDF2Scheme(desc.theta, op, trapezoidal, bc_set, rel_tol=desc.mu)


_EVOLVER_FACTORIES: dict[FdmSchemeType, _EvolverFactory] = {
    FdmSchemeType.HUNDSDORFER: lambda d, op, bc: HundsdorferScheme(d.theta, d.mu, op, bc),
    FdmSchemeType.DOUGLAS: lambda d, op, bc: DouglasScheme(d.theta, op, bc),
    FdmSchemeType.CRANK_NICOLSON: lambda d, op, bc: CrankNicolsonScheme(d.theta, op, bc),
    FdmSchemeType.CRAIG_SNEYD: lambda d, op, bc: CraigSneydScheme(d.theta, d.mu, op, bc),
    FdmSchemeType.MODIFIED_CRAIG_SNEYD: lambda d, op, bc: ModifiedCraigSneydScheme(d.theta, d.mu, op, bc),
    FdmSchemeType.IMPLICIT_EULER: lambda d, op, bc: ImplicitEulerScheme(op, bc),
    FdmSchemeType.EXPLICIT_EULER: lambda d, op, bc: ExplicitEulerScheme(op, bc),
    FdmSchemeType.METHOD_OF_LINES: lambda d, op, bc: MethodOfLinesScheme(d.theta, d.mu, op, bc),
    FdmSchemeType.TR_BDF2: _tr_bdf2,
}


def make_evolver(
    scheme_desc: FdmSchemeDesc,
    op: "FdmLinearOpComposite",
    bc_set: Sequence["FdmDirichletBoundary"] | None = None,
) -> TimeStepEvolver:
    """Build the evolver for ``scheme_desc.type``."""
    try:
        factory = _EVOLVER_FACTORIES[scheme_desc.type]
    except KeyError:
        raise UnsupportedFeatureError(f"Unknown scheme type {scheme_desc.type!r}") from None
    return factory(scheme_desc, op, list(bc_set or []))


class FdmBackwardSolver:
    """Rolls a grid back from ``from_time`` to ``to_time``.

    The first ``damping_steps`` of the interval are taken with implicit
    Euler to smooth non-differentiable payoffs; the remaining ``steps`` use
    the configured scheme.  Every stopping time of ``condition`` is hit
    exactly in both phases.
    """

    def __init__(
        self,
        op: "FdmLinearOpComposite",
        bc_set: Sequence["FdmDirichletBoundary"] | None,
        condition: "FdmStepConditionComposite",
        scheme_desc: FdmSchemeDesc,
    ) -> None:
        self.op = op
        self.bc_set = list(bc_set or [])
        self.condition = condition
        self.scheme_desc = scheme_desc

    def rollback(
        self,
        values: np.ndarray,
        from_time: float,
        to_time: float,
        steps: int,
        damping_steps: int,
    ) -> np.ndarray:
        """Roll ``values`` back in place and return them.

        Raises
        ======
        ValidationError
            On an empty or reversed interval, negative step counts, no steps
            at all, or a grid that does not match the operator's mesh.
        UnsupportedFeatureError
            If the scheme type has no evolver.
        """
        if not from_time > to_time:
            raise ValidationError(f"from_time ({from_time}) must be greater than to_time ({to_time})")
        if steps < 0 or damping_steps < 0:
            raise ValidationError("steps and damping_steps must be non-negative")
        all_steps = steps + damping_steps
        if all_steps < 1:
            raise ValidationError("at least one time step is required")
        mesher = getattr(self.op, "mesher", None)
        if mesher is not None and values.size != mesher.layout.size:
            raise ValidationError(
                f"grid size {values.size} does not match mesh size {mesher.layout.size}"
            )

        scheme_type = self.scheme_desc.type
        evolver = make_evolver(self.scheme_desc, self.op, self.bc_set)
        stopping_times = self.condition.stopping_times

        delta_t = from_time - to_time
        damping_to = from_time - delta_t * damping_steps / all_steps
        logger.debug(
            "Rollback %s from %.6f to %.6f: steps=%d damping_steps=%d",
            scheme_type.value,
            from_time,
            to_time,
            steps,
            damping_steps,
        )

        result = values
        if scheme_type is FdmSchemeType.IMPLICIT_EULER:
            model = FiniteDifferenceModel(evolver, stopping_times)
            result = model.rollback(result, from_time, to_time, all_steps, self.condition)
        else:
            if damping_steps > 0:
                damping = FiniteDifferenceModel(ImplicitEulerScheme(self.op, self.bc_set), stopping_times)
                result = damping.rollback(result, from_time, damping_to, damping_steps, self.condition)
            # a stop at damping_to was already applied by the damping phase
            model = FiniteDifferenceModel(evolver, stopping_times)
            result = model.rollback(
                result, damping_to, to_time, steps, self.condition, apply_at_start=damping_steps == 0
            )

        if result is not values:
            values[:] = result
        return values
