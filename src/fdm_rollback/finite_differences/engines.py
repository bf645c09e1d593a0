"""Finite-difference pricing engine for vanilla equity options."""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple, Sequence
import datetime as dt
import logging
import math

from ..enums import DayCountConvention
from ..exceptions import ValidationError
from ..params import FdmSchemeDesc, FdmSolverDesc
from ..utils import calculate_year_fraction
from .inner_value import FdmLogInnerValue
from .meshers import FdmBlackScholesMesher, FdmMesherComposite
from .solvers import FdmBlackScholesSolver
from .step_conditions import FdmStepConditionComposite

if TYPE_CHECKING:
    from ..instruments import Exercise, PlainVanillaPayoff
    from ..market_environment import BlackScholesProcess, FdmQuantoHelper

logger = logging.getLogger(__name__)

__all__ = ["FdResult", "FdBlackScholesVanillaEngine"]


class FdResult(NamedTuple):
    value: float
    delta: float
    gamma: float
    theta: float


class FdBlackScholesVanillaEngine:
    """Prices European, American and Bermudan vanillas with cash dividends.

    Parameters
    ==========
    process: BlackScholesProcess
        spot, curves and volatility
    t_grid: int
        number of regular time steps
    x_grid: int
        number of log-spot mesh nodes, concentrated around the strike
    damping_steps: int
        implicit Euler steps taken first to smooth the payoff kink
    scheme_desc: FdmSchemeDesc, default Douglas
        evolution scheme for the remaining steps
    local_vol: bool
        use the process' local volatility instead of the Black variance
    quanto_helper: FdmQuantoHelper, optional
        drift correction for a payout in another currency
    """

    def __init__(
        self,
        process: "BlackScholesProcess",
        t_grid: int = 100,
        x_grid: int = 100,
        damping_steps: int = 0,
        scheme_desc: FdmSchemeDesc | None = None,
        local_vol: bool = False,
        illegal_local_vol_overwrite: float | None = None,
        quanto_helper: "FdmQuantoHelper | None" = None,
    ) -> None:
        self.process = process
        self.t_grid = t_grid
        self.x_grid = x_grid
        self.damping_steps = damping_steps
        self.scheme_desc = scheme_desc if scheme_desc is not None else FdmSchemeDesc.douglas()
        self.local_vol = local_vol
        self.illegal_local_vol_overwrite = illegal_local_vol_overwrite
        self.quanto_helper = quanto_helper

    def calculate(
        self,
        payoff: "PlainVanillaPayoff",
        exercise: "Exercise",
        reference_date: dt.date,
        dividends: Sequence[tuple[dt.date, float]] | None = None,
        day_count: DayCountConvention = DayCountConvention.ACT_365F,
    ) -> FdResult:
        maturity = calculate_year_fraction(reference_date, exercise.last_date, day_count)
        if not maturity > 0.0:
            raise ValidationError("exercise date must be after the reference date")
        dividends = [
            (d, a) for d, a in (dividends or []) if reference_date <= d <= exercise.last_date
        ]

        equity_mesher = FdmBlackScholesMesher(
            self.x_grid,
            self.process,
            maturity,
            payoff.strike,
            None,
            None,
            0.0001,
            1.5,
            (payoff.strike, 0.1),
            dividends,
            reference_date,
            day_count,
        )
        mesher = FdmMesherComposite(equity_mesher)
        calculator = FdmLogInnerValue(payoff, mesher, 0)
        conditions = FdmStepConditionComposite.vanilla_composite(
            dividends, exercise, mesher, calculator, reference_date, day_count
        )
        solver_desc = FdmSolverDesc(
            mesher=mesher,
            condition=conditions,
            calculator=calculator,
            maturity=maturity,
            time_steps=self.t_grid,
            damping_steps=self.damping_steps,
        )
        solver = FdmBlackScholesSolver(
            self.process,
            payoff.strike,
            solver_desc,
            self.scheme_desc,
            self.local_vol,
            self.illegal_local_vol_overwrite,
            self.quanto_helper,
        )

        spot = self.process.x0
        stops = conditions.stopping_times
        theta = math.nan if stops and stops[0] <= 0.0 else solver.theta_at(spot)
        result = FdResult(
            value=solver.value_at(spot),
            delta=solver.delta_at(spot),
            gamma=solver.gamma_at(spot),
            theta=theta,
        )
        logger.debug("FD vanilla %s: %s", exercise.exercise_type.value, result)
        return result
