"""Configuration objects for the finite-difference rollback.

``FdmSchemeDesc`` names one evolution scheme and its two weights;
``FdmSolverDesc`` bundles everything a solver needs for one rollback
(mesh, boundary conditions, step conditions, payoff, horizon, steps).
Both are immutable and validated on construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
import math

from .enums import FdmSchemeType
from .exceptions import ConfigurationError, ValidationError

if TYPE_CHECKING:
    from .finite_differences.inner_value import FdmInnerValueCalculator
    from .finite_differences.meshers import FdmMesher
    from .finite_differences.step_conditions import FdmStepConditionComposite


@dataclass(frozen=True, slots=True)
class FdmSchemeDesc:
    """Evolution scheme descriptor.

    Attributes
    ==========
    type:
        Scheme kind. Strings are coerced to :class:`FdmSchemeType`.
    theta:
        Implicitness weight for the ADI family. For the method of lines this
        is the relative tolerance of the adaptive integrator, for TR-BDF2 the
        trapezoidal fraction alpha of each step.
    mu:
        Mixed-derivative correction weight for the ADI family. For the
        method of lines the initial step size relative to the time step, for
        TR-BDF2 the tolerance of the iterative linear solve.
    """

    type: FdmSchemeType | str
    theta: float
    mu: float

    def __post_init__(self):
        if isinstance(self.type, str):
            try:
                object.__setattr__(self, "type", FdmSchemeType(self.type))
            except ValueError as exc:
                raise ConfigurationError(f"unknown scheme type {self.type!r}") from exc
        if not isinstance(self.type, FdmSchemeType):
            raise ConfigurationError(f"type must be an FdmSchemeType, got {self.type!r}")
        if not (math.isfinite(self.theta) and math.isfinite(self.mu)):
            raise ValidationError(f"theta and mu must be finite, got {self.theta}, {self.mu}")

    @classmethod
    def douglas(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.DOUGLAS, 0.5, 0.0)

    @classmethod
    def implicit_euler(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.IMPLICIT_EULER, 0.0, 0.0)

    @classmethod
    def explicit_euler(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.EXPLICIT_EULER, 0.0, 0.0)

    @classmethod
    def crank_nicolson(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.CRANK_NICOLSON, 0.5, 0.0)

    @classmethod
    def method_of_lines(cls, eps: float = 0.001, rel_init_step_size: float = 0.01) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.METHOD_OF_LINES, eps, rel_init_step_size)

    @classmethod
    def tr_bdf2(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.TR_BDF2, 2.0 - math.sqrt(2.0), 1e-8)

    @classmethod
    def craig_sneyd(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.CRAIG_SNEYD, 0.5, 0.5)

    @classmethod
    def modified_craig_sneyd(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.MODIFIED_CRAIG_SNEYD, 1.0 / 3.0, 1.0 / 3.0)

    @classmethod
    def hundsdorfer(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.HUNDSDORFER, 0.5 + math.sqrt(3.0) / 6.0, 0.5)

    @classmethod
    def modified_hundsdorfer(cls) -> "FdmSchemeDesc":
        return cls(FdmSchemeType.HUNDSDORFER, 1.0 - math.sqrt(2.0) / 2.0, 0.5)


@dataclass(frozen=True, slots=True)
class FdmSolverDesc:
    """Everything one rollback needs, owned by the caller.

    Attributes:
        mesher: Spatial mesh; its layout fixes the grid size.
        bc_set: Boundary conditions, passed through to the schemes.
            Empty means natural boundaries from the operator stencils.
        condition: Step-condition composite (exercise, dividends).
        calculator: Inner value calculator seeding the grid at maturity.
        maturity: Time to horizon in year fractions. Must be positive.
        time_steps: Number of regular time steps. Default: 100.
        damping_steps: Number of implicit Euler damping steps. Default: 0.
        log_timings: Log the rollback wall time at DEBUG level.
    """

    mesher: "FdmMesher"
    condition: "FdmStepConditionComposite"
    calculator: "FdmInnerValueCalculator"
    maturity: float
    time_steps: int = 100
    damping_steps: int = 0
    bc_set: list[Any] = field(default_factory=list)
    log_timings: bool = False

    def __post_init__(self):
        if not self.maturity > 0.0:
            raise ValidationError(f"maturity must be positive, got {self.maturity}")
        if self.time_steps < 1:
            raise ValidationError(f"time_steps must be >= 1, got {self.time_steps}")
        if self.damping_steps < 0:
            raise ValidationError(f"damping_steps must be >= 0, got {self.damping_steps}")
