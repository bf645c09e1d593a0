"""Custom exception hierarchy for the fdm_rollback library.

All library-specific exceptions inherit from :class:`FdmRollbackError`,
so callers can stop any failed rollback with a single ``except`` clause::

    try:
        solver.rollback(values, maturity, 0.0, steps=100, damping_steps=0)
    except FdmRollbackError as exc:
        log.error("Rollback failed: %s", exc)
"""

from __future__ import annotations


class FdmRollbackError(Exception):
    """Base exception for all library errors."""


# ── Input validation ────────────────────────────────────────────────


class ValidationError(FdmRollbackError):
    """Invalid input values (time intervals, step counts, size mismatches, etc.)."""


class ConfigurationError(FdmRollbackError):
    """Wrong types passed to a public API (e.g. raw string that is not a scheme name)."""


# ── Feature support ─────────────────────────────────────────────────


class UnsupportedFeatureError(FdmRollbackError):
    """Requested scheme or exercise style is not supported."""


# ── Numerical issues ────────────────────────────────────────────────


class NumericalError(FdmRollbackError):
    """Base for errors arising from numerical computation."""


class ConvergenceError(NumericalError):
    """An iterative solver or ODE integrator failed within the allowed tolerance."""
