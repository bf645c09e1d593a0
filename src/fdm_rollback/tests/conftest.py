"""Shared pytest fixtures for fdm_rollback tests."""

import datetime as dt

import pytest

from fdm_rollback.enums import OptionType
from fdm_rollback.instruments import PlainVanillaPayoff
from fdm_rollback.market_environment import BlackScholesProcess, HullWhite
from fdm_rollback.rates import DiscountCurve

from fdm_rollback.tests.helpers import uniform_log_mesher


# ---------------------------------------------------------------------------
# Scalar constants
# ---------------------------------------------------------------------------

REFERENCE_DATE = dt.date(2025, 1, 1)
MATURITY_DATE = dt.date(2026, 1, 1)  # 365 days, one year under ACT/365F
SPOT = 100.0
STRIKE = 100.0
RATE = 0.05
VOL = 0.20


@pytest.fixture()
def reference_date() -> dt.date:
    return REFERENCE_DATE


@pytest.fixture()
def maturity_date() -> dt.date:
    return MATURITY_DATE


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


@pytest.fixture()
def risk_free_curve() -> DiscountCurve:
    return DiscountCurve.flat(RATE, end_time=2.0)


@pytest.fixture()
def process(risk_free_curve: DiscountCurve) -> BlackScholesProcess:
    return BlackScholesProcess(SPOT, risk_free_curve, VOL)


@pytest.fixture()
def hull_white() -> HullWhite:
    return HullWhite(DiscountCurve.flat(0.03, end_time=10.0), a=0.1, sigma=0.01)


# ---------------------------------------------------------------------------
# Payoffs and meshes
# ---------------------------------------------------------------------------


@pytest.fixture()
def call_payoff() -> PlainVanillaPayoff:
    return PlainVanillaPayoff(OptionType.CALL, STRIKE)


@pytest.fixture()
def put_payoff() -> PlainVanillaPayoff:
    return PlainVanillaPayoff(OptionType.PUT, STRIKE)


@pytest.fixture()
def log_mesher():
    """121-node uniform log-spot mesh centred on the spot."""
    return uniform_log_mesher(SPOT)
