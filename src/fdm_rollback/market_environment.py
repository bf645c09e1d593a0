"""Versioned market data consumed by the specialized solvers.

Solvers cache their rolled-back grids and compare the ``generation`` token
of their market data before reusing a cached result.  Every mutator below
bumps a version counter, so a changed quote or curve is picked up on the
next query and never before.
"""

from __future__ import annotations

from typing import Callable
import itertools

import numpy as np

from .rates import DiscountCurve
from .exceptions import ValidationError

__all__ = ["Quote", "BlackScholesProcess", "FdmQuantoHelper", "HullWhite"]

_version_counter = itertools.count(1)


class Quote:
    """Mutable market quote with a monotone version."""

    def __init__(self, value: float) -> None:
        self._value = float(value)
        self._version = next(_version_counter)

    @property
    def value(self) -> float:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    def set_value(self, value: float) -> None:
        value = float(value)
        if value != self._value:
            self._value = value
            self._version = next(_version_counter)

    def __repr__(self) -> str:
        return f"Quote({self._value!r})"


class BlackScholesProcess:
    """Generalized Black-Scholes process: spot, r and q curves, volatility.

    ``local_vol`` is an optional callable ``(t, spot_array) -> vol_array``
    used by the operator when local volatility is requested.
    """

    def __init__(
        self,
        spot: Quote | float,
        risk_free_curve: DiscountCurve,
        volatility: Quote | float,
        dividend_curve: DiscountCurve | None = None,
        local_vol: Callable[[float, np.ndarray], np.ndarray] | None = None,
    ) -> None:
        self.spot = spot if isinstance(spot, Quote) else Quote(spot)
        self.volatility = volatility if isinstance(volatility, Quote) else Quote(volatility)
        if self.spot.value <= 0.0:
            raise ValidationError("negative or null underlying given")
        if self.volatility.value < 0.0:
            raise ValidationError("volatility must be non-negative")
        self._risk_free_curve = risk_free_curve
        self._dividend_curve = dividend_curve
        self.local_vol = local_vol
        self._version = next(_version_counter)

    @property
    def x0(self) -> float:
        return self.spot.value

    @property
    def risk_free_curve(self) -> DiscountCurve:
        return self._risk_free_curve

    @property
    def dividend_curve(self) -> DiscountCurve | None:
        return self._dividend_curve

    def set_risk_free_curve(self, curve: DiscountCurve) -> None:
        self._risk_free_curve = curve
        self._version = next(_version_counter)

    def set_dividend_curve(self, curve: DiscountCurve | None) -> None:
        self._dividend_curve = curve
        self._version = next(_version_counter)

    @property
    def generation(self) -> tuple[int, int, int]:
        return (self._version, self.spot.version, self.volatility.version)

    def dividend_discount(self, t: float) -> float:
        if self._dividend_curve is None:
            return 1.0
        return float(self._dividend_curve.df(t))

    def dividend_forward_rate(self, t1: float, t2: float) -> float:
        if self._dividend_curve is None:
            return 0.0
        return self._dividend_curve.forward_rate(t1, t2)

    def black_variance(self, t1: float, t2: float) -> float:
        """Forward Black variance on ``[t1, t2]`` for a constant volatility."""
        return self.volatility.value**2 * (t2 - t1)


class FdmQuantoHelper:
    """Drift correction for an equity paying out in another currency.

    ``quanto_adjustment`` is ``r_d - r_f + rho sigma_S sigma_FX`` on a step;
    the Black-Scholes operator subtracts it from the log-spot drift.
    """

    def __init__(
        self,
        risk_free_curve: DiscountCurve,
        foreign_curve: DiscountCurve,
        fx_volatility: Quote | float,
        equity_fx_correlation: Quote | float,
    ) -> None:
        self.fx_volatility = fx_volatility if isinstance(fx_volatility, Quote) else Quote(fx_volatility)
        self.equity_fx_correlation = (
            equity_fx_correlation
            if isinstance(equity_fx_correlation, Quote)
            else Quote(equity_fx_correlation)
        )
        if self.fx_volatility.value < 0.0:
            raise ValidationError("fx volatility must be non-negative")
        if not -1.0 <= self.equity_fx_correlation.value <= 1.0:
            raise ValidationError("equity/fx correlation must lie in [-1, 1]")
        self.risk_free_curve = risk_free_curve
        self.foreign_curve = foreign_curve
        self._version = next(_version_counter)

    def set_curves(self, risk_free_curve: DiscountCurve, foreign_curve: DiscountCurve) -> None:
        self.risk_free_curve = risk_free_curve
        self.foreign_curve = foreign_curve
        self._version = next(_version_counter)

    @property
    def generation(self) -> tuple[int, int, int]:
        return (self._version, self.fx_volatility.version, self.equity_fx_correlation.version)

    def quanto_adjustment(
        self, equity_vol: float | np.ndarray, t1: float, t2: float
    ) -> float | np.ndarray:
        r_domestic = self.risk_free_curve.forward_rate(t1, t2)
        r_foreign = self.foreign_curve.forward_rate(t1, t2)
        fx_vol = self.fx_volatility.value
        return r_domestic - r_foreign + equity_vol * fx_vol * self.equity_fx_correlation.value


class HullWhite:
    """One-factor Hull-White model fitted to a discount curve.

    The short rate is ``r(t) = x(t) + alpha(t)`` with
    ``dx = -a x dt + sigma dW`` and ``x(0) = 0``.
    """

    def __init__(self, discount_curve: DiscountCurve, a: float = 0.1, sigma: float = 0.01) -> None:
        if a <= 0.0:
            raise ValidationError("mean reversion a must be positive")
        if sigma <= 0.0:
            raise ValidationError("sigma must be positive")
        self._curve = discount_curve
        self._a = Quote(a)
        self._sigma = Quote(sigma)
        self._version = next(_version_counter)

    @property
    def a(self) -> float:
        return self._a.value

    @property
    def sigma(self) -> float:
        return self._sigma.value

    @property
    def discount_curve(self) -> DiscountCurve:
        return self._curve

    def set_params(self, a: float, sigma: float) -> None:
        self._a.set_value(a)
        self._sigma.set_value(sigma)

    def set_discount_curve(self, curve: DiscountCurve) -> None:
        self._curve = curve
        self._version = next(_version_counter)

    @property
    def generation(self) -> tuple[int, int, int]:
        return (self._version, self._a.version, self._sigma.version)

    def alpha(self, t: float) -> float:
        a, sigma = self.a, self.sigma
        f = self._curve.instantaneous_forward(t)
        temp = sigma * (1.0 - np.exp(-a * t)) / a
        return float(f + 0.5 * temp * temp)

    def short_rate(self, t: float, x: float | np.ndarray) -> float | np.ndarray:
        return x + self.alpha(t)

    def B(self, t: float, T: float) -> float:
        return float((1.0 - np.exp(-self.a * (T - t))) / self.a)

    def A(self, t: float, T: float) -> float:
        a, sigma = self.a, self.sigma
        disc_t = float(self._curve.df(t))
        disc_T = float(self._curve.df(T))
        forward = self._curve.instantaneous_forward(t)
        b = self.B(t, T)
        temp = sigma * b
        value = b * forward - 0.25 * temp * temp * (1.0 - np.exp(-2.0 * a * t)) / a
        return float(np.exp(value) * disc_T / disc_t)

    def discount_bond(self, t: float, T: float, x: float | np.ndarray) -> float | np.ndarray:
        """Zero bond price P(t, T) given the state ``x`` at ``t``."""
        r = self.short_rate(t, x)
        return self.A(t, T) * np.exp(-self.B(t, T) * r)
