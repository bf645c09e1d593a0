"""Discount curves feeding the finite-difference operators."""

import warnings
from dataclasses import dataclass

import numpy as np

from .exceptions import ValidationError

_FORWARD_BUMP = 1.0e-4


@dataclass(frozen=True, slots=True)
class DiscountCurve:
    """Deterministic discount curve with log-linear interpolation.

    times are year fractions from the reference date and must be strictly
    increasing; dfs are the positive discount factors at those times.
    A flat curve remembers its rate so that forwards are exact.
    """

    times: np.ndarray
    dfs: np.ndarray
    flat_rate: float | None = None

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float)
        df = np.asarray(self.dfs, dtype=float)
        if t.ndim != 1 or df.ndim != 1 or t.shape != df.shape:
            raise ValidationError("times and dfs must be 1D arrays of the same length")
        if t.size < 2:
            raise ValidationError("times must contain at least two points")
        if np.any(np.diff(t) <= 0.0):
            raise ValidationError("times must be strictly increasing")
        if np.any(df <= 0.0):
            raise ValidationError("discount factors must be positive")
        if self.flat_rate is not None and not np.isfinite(float(self.flat_rate)):
            raise ValidationError("flat_rate must be finite when provided")
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "dfs", df)

    @classmethod
    def flat(cls, rate: float, end_time: float, steps: int = 1) -> "DiscountCurve":
        """Build a flat continuously-compounded curve on ``[0, end_time]``."""
        if end_time <= 0.0:
            raise ValidationError("end_time must be positive")
        if steps < 1:
            raise ValidationError("steps must be >= 1")
        times = np.linspace(0.0, float(end_time), int(steps) + 1)
        dfs = np.exp(-float(rate) * times)
        return cls(times=times, dfs=dfs, flat_rate=float(rate))

    @classmethod
    def from_forwards(cls, times: np.ndarray, forwards: np.ndarray) -> "DiscountCurve":
        """Build a curve from piecewise-constant forward rates.

        Parameters
        ----------
        times
            Year-fraction grid including 0.  Shape ``(N+1,)``.
        forwards
            Continuously-compounded forward rate on each interval.  Shape ``(N,)``.
        """
        times = np.asarray(times, dtype=float)
        forwards = np.asarray(forwards, dtype=float)
        if times.ndim != 1 or forwards.ndim != 1:
            raise ValidationError("times and forwards must be 1-D arrays")
        if forwards.size != times.size - 1:
            raise ValidationError("forwards must have length len(times) - 1")
        if not np.isclose(times[0], 0.0):
            raise ValidationError("times must start at 0.0")
        cum_rate = np.concatenate([[0.0], np.cumsum(forwards * np.diff(times))])
        return cls(times=times, dfs=np.exp(-cum_rate))

    @property
    def max_time(self) -> float:
        return float(self.times[-1])

    def df(self, t: float | np.ndarray) -> np.ndarray:
        """Discount factor(s) at year fraction(s) ``t``."""
        t = np.asarray(t, dtype=float)
        if self.flat_rate is not None:
            return np.exp(-self.flat_rate * t)
        t_min, t_max = float(self.times[0]), float(self.times[-1])
        if np.any((t < t_min) | (t > t_max)):
            warnings.warn(
                f"Extrapolating discount curve outside [{t_min:.4f}, {t_max:.4f}], "
                "flat log-DF assumed",
                stacklevel=2,
            )
        log_df = np.log(self.dfs)
        return np.exp(np.interp(t, self.times, log_df, left=log_df[0], right=log_df[-1]))

    def forward_rate(self, t0: float, t1: float) -> float:
        """Continuously-compounded forward rate on ``[t0, t1]``."""
        if t1 <= t0:
            raise ValidationError("Need t1 > t0")
        if self.flat_rate is not None:
            return float(self.flat_rate)
        df0 = float(self.df(t0))
        df1 = float(self.df(t1))
        return float((np.log(df0) - np.log(df1)) / (t1 - t0))

    def instantaneous_forward(self, t: float) -> float:
        """Instantaneous forward rate f(0, t), one-sided at the curve end."""
        if self.flat_rate is not None:
            return float(self.flat_rate)
        t = float(t)
        if t + _FORWARD_BUMP <= self.max_time:
            return self.forward_rate(t, t + _FORWARD_BUMP)
        return self.forward_rate(max(t - _FORWARD_BUMP, 0.0), max(t, _FORWARD_BUMP))
