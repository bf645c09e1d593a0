"""Closed-form reference prices used to benchmark the rollback engine."""

from __future__ import annotations

import numpy as np
from scipy.stats import norm

from .enums import OptionType
from .exceptions import ValidationError
from .market_environment import HullWhite


def _d_values(
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    df_r: float,
    df_q: float,
) -> tuple[float, float]:
    """Calculate d1 and d2 for the Black-Scholes-Merton model.

    Parameters
    ----------
    spot
        Current spot price.
    strike
        Strike price.
    time_to_maturity
        Time to maturity in years.
    volatility
        Volatility (annualized).
    df_r
        Risk-free discount factor $P(0,T)$.
    df_q
        Dividend discount factor $D_q(0,T)$.
    """
    if time_to_maturity <= 0:
        raise ValidationError("time_to_maturity must be positive")

    forward = spot * df_q / df_r
    denominator = volatility * np.sqrt(time_to_maturity)

    if denominator < 1e-300:
        # Zero vol: deterministic limit.
        if forward > strike:
            return np.inf, np.inf
        elif forward < strike:
            return -np.inf, -np.inf
        else:
            return 0.0, 0.0

    d1 = (np.log(forward / strike) + 0.5 * volatility**2 * time_to_maturity) / denominator
    return d1, d1 - denominator


def black_scholes_price(
    *,
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    risk_free_rate: float,
    dividend_yield: float = 0.0,
    option_type: OptionType = OptionType.CALL,
) -> float:
    """European Black-Scholes-Merton price with continuous yields."""
    df_r = float(np.exp(-risk_free_rate * time_to_maturity))
    df_q = float(np.exp(-dividend_yield * time_to_maturity))
    d1, d2 = _d_values(spot, strike, time_to_maturity, volatility, df_r, df_q)
    if option_type is OptionType.CALL:
        return float(spot * df_q * norm.cdf(d1) - strike * df_r * norm.cdf(d2))
    return float(strike * df_r * norm.cdf(-d2) - spot * df_q * norm.cdf(-d1))


def hull_white_bond_option_price(
    model: HullWhite,
    *,
    option_type: OptionType,
    strike: float,
    maturity: float,
    bond_maturity: float,
) -> float:
    """Jamshidian price of a European option on a zero bond under Hull-White.

    The option expires at ``maturity`` and delivers the zero bond paying one
    unit at ``bond_maturity``.
    """
    if not 0.0 < maturity < bond_maturity:
        raise ValidationError("need 0 < maturity < bond_maturity")
    a, sigma = model.a, model.sigma
    df_t = float(model.discount_curve.df(maturity))
    df_s = float(model.discount_curve.df(bond_maturity))
    sigma_p = sigma * np.sqrt((1.0 - np.exp(-2.0 * a * maturity)) / (2.0 * a)) * model.B(
        maturity, bond_maturity
    )
    h = np.log(df_s / (df_t * strike)) / sigma_p + 0.5 * sigma_p
    if option_type is OptionType.CALL:
        return float(df_s * norm.cdf(h) - strike * df_t * norm.cdf(h - sigma_p))
    return float(strike * df_t * norm.cdf(-h + sigma_p) - df_s * norm.cdf(-h))
