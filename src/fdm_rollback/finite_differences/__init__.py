"""Finite-difference rollback engine.

Public API
----------
Mesh and operators:
    FdmLinearOpLayout, FdmMesherComposite and the 1-D meshers
    TripleBandLinearOp, FdmBlackScholesOp, FdmHullWhiteOp

Step conditions:
    FdmAmericanStepCondition, FdmBermudanStepCondition,
    FdmSnapshotCondition, FdmDividendHandler, FdmStepConditionComposite

Solvers:
    FdmBackwardSolver: damping plus scheme dispatch
    Fdm1DimSolver: lazy 1-D rollback with spline read-out
    FdmBlackScholesSolver, FdmHullWhiteSolver
    FdBlackScholesVanillaEngine: vanilla option pricing
"""

from .layout import FdmLinearOpLayout
from .meshers import (
    Fdm1dMesher,
    Uniform1dMesher,
    Concentrating1dMesher,
    FdmBlackScholesMesher,
    FdmHullWhiteMesher,
    FdmMesherComposite,
)
from .operators import (
    TripleBandLinearOp,
    FirstDerivativeOp,
    SecondDerivativeOp,
    FdmLinearOpComposite,
    FdmBlackScholesOp,
    FdmHullWhiteOp,
)
from .boundary import FdmDirichletBoundary, BoundaryConditionSchemeHelper
from .inner_value import (
    FdmInnerValueCalculator,
    FdmLogInnerValue,
    FdmZeroInnerValue,
    FdmHullWhiteZeroBondInnerValue,
)
from .step_conditions import (
    StepCondition,
    FdmAmericanStepCondition,
    FdmBermudanStepCondition,
    FdmSnapshotCondition,
    FdmDividendHandler,
    FdmStepConditionComposite,
)
from .schemes import TimeStepEvolver
from .model import FiniteDifferenceModel
from .backward_solver import FdmBackwardSolver, make_evolver
from .solvers import (
    Fdm1DimSolver,
    FdmBlackScholesSolver,
    FdmHullWhiteSolver,
    monotonic_cubic_spline,
)
from .engines import FdResult, FdBlackScholesVanillaEngine

__all__ = [
    # Mesh
    "FdmLinearOpLayout",
    "Fdm1dMesher",
    "Uniform1dMesher",
    "Concentrating1dMesher",
    "FdmBlackScholesMesher",
    "FdmHullWhiteMesher",
    "FdmMesherComposite",
    # Operators and boundaries
    "TripleBandLinearOp",
    "FirstDerivativeOp",
    "SecondDerivativeOp",
    "FdmLinearOpComposite",
    "FdmBlackScholesOp",
    "FdmHullWhiteOp",
    "FdmDirichletBoundary",
    "BoundaryConditionSchemeHelper",
    # Inner values
    "FdmInnerValueCalculator",
    "FdmLogInnerValue",
    "FdmZeroInnerValue",
    "FdmHullWhiteZeroBondInnerValue",
    # Step conditions
    "StepCondition",
    "FdmAmericanStepCondition",
    "FdmBermudanStepCondition",
    "FdmSnapshotCondition",
    "FdmDividendHandler",
    "FdmStepConditionComposite",
    # Time stepping and solvers
    "TimeStepEvolver",
    "FiniteDifferenceModel",
    "FdmBackwardSolver",
    "make_evolver",
    "Fdm1DimSolver",
    "FdmBlackScholesSolver",
    "FdmHullWhiteSolver",
    "monotonic_cubic_spline",
    "FdResult",
    "FdBlackScholesVanillaEngine",
]
