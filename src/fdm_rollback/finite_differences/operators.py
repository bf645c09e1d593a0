"""Finite-difference operators on a mesher.

``TripleBandLinearOp`` is the workhorse: a three-point stencil along one
mesh direction, stored as ``lower``/``diag``/``upper`` bands indexed by the
linear layout.  Model operators (Black-Scholes, Hull-White) assemble it
from first and second derivative stencils and refresh the coefficients in
``set_time`` for each time step.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable
import logging

import numpy as np
from scipy import sparse

from ..exceptions import NumericalError, ValidationError

if TYPE_CHECKING:
    from ..market_environment import BlackScholesProcess, FdmQuantoHelper, HullWhite
    from .meshers import FdmMesherComposite

logger = logging.getLogger(__name__)

__all__ = [
    "TripleBandLinearOp",
    "FirstDerivativeOp",
    "SecondDerivativeOp",
    "FdmLinearOpComposite",
    "FdmBlackScholesOp",
    "FdmHullWhiteOp",
]


def _solve_tridiagonal_thomas(
    lower: np.ndarray,
    diag: np.ndarray,
    upper: np.ndarray,
    rhs: np.ndarray,
) -> np.ndarray:
    """Solve a tridiagonal system Ax = rhs via the Thomas algorithm.

    A has:
      - lower: subdiagonal (length n-1)  -> A[i, i-1]
      - diag:  main diagonal (length n)  -> A[i, i]
      - upper: superdiagonal (length n-1)-> A[i, i+1]
    """
    n = diag.size
    if rhs.size != n:
        raise ValidationError("rhs length must match diag length")
    if lower.size != n - 1 or upper.size != n - 1:
        raise ValidationError("lower/upper must have length n-1")

    # plain floats keep the scalar loops fast
    c = upper.tolist()
    d = diag.tolist()
    b = lower.tolist()
    y = rhs.tolist()

    # Forward elimination
    for i in range(1, n):
        if d[i - 1] == 0.0:
            raise NumericalError("division by zero in tridiagonal solve")
        w = b[i - 1] / d[i - 1]
        d[i] -= w * c[i - 1]
        y[i] -= w * y[i - 1]

    if d[-1] == 0.0:
        raise NumericalError("division by zero in tridiagonal solve")

    # Back substitution
    x = [0.0] * n
    x[-1] = y[-1] / d[-1]
    for i in range(n - 2, -1, -1):
        x[i] = (y[i] - c[i] * x[i + 1]) / d[i]
    return np.asarray(x, dtype=float)


def _as_band(value: float | np.ndarray | None, size: int) -> np.ndarray:
    if value is None:
        return np.zeros(size)
    arr = np.asarray(value, dtype=float)
    if arr.size == 1:
        return np.full(size, float(arr.reshape(-1)[0]))
    if arr.size != size:
        raise ValidationError(f"inconsistent size: expected {size}, got {arr.size}")
    return arr


class TripleBandLinearOp:
    """Three-point stencil operator along ``direction`` of a mesher."""

    def __init__(self, direction: int, mesher: "FdmMesherComposite") -> None:
        layout = mesher.layout
        n = layout.size
        self.direction = direction
        self.mesher = mesher
        self.i0 = layout.neighbourhood_array(direction, -1)
        self.i2 = layout.neighbourhood_array(direction, 1)
        self.lower = np.zeros(n)
        self.diag = np.zeros(n)
        self.upper = np.zeros(n)

        # ordering of the linear indices in which ``direction`` runs fastest
        dims = list(layout.dim)
        dims[0], dims[direction] = dims[direction], dims[0]
        new_spacing = [1]
        for d in dims[:-1]:
            new_spacing.append(new_spacing[-1] * d)
        new_spacing[0], new_spacing[direction] = new_spacing[direction], new_spacing[0]
        new_index = sum(
            layout.coordinate_array(k) * new_spacing[k] for k in range(len(layout.dim))
        )
        self.reverse_index = np.empty(n, dtype=int)
        self.reverse_index[new_index] = np.arange(n)
        self._coord = layout.coordinate_array(direction)

    def _empty_like(self) -> "TripleBandLinearOp":
        retval = object.__new__(TripleBandLinearOp)
        retval.direction = self.direction
        retval.mesher = self.mesher
        retval.i0 = self.i0
        retval.i2 = self.i2
        retval.reverse_index = self.reverse_index
        retval._coord = self._coord
        return retval

    def copy(self) -> "TripleBandLinearOp":
        retval = self._empty_like()
        retval.lower = self.lower.copy()
        retval.diag = self.diag.copy()
        retval.upper = self.upper.copy()
        return retval

    @property
    def size(self) -> int:
        return self.diag.size

    def apply(self, r: np.ndarray) -> np.ndarray:
        r = np.asarray(r, dtype=float)
        if r.size != self.size:
            raise ValidationError("inconsistent length of r")
        return r[self.i0] * self.lower + r * self.diag + r[self.i2] * self.upper

    def add(self, other: "TripleBandLinearOp | np.ndarray | float") -> "TripleBandLinearOp":
        retval = self._empty_like()
        if isinstance(other, TripleBandLinearOp):
            retval.lower = self.lower + other.lower
            retval.diag = self.diag + other.diag
            retval.upper = self.upper + other.upper
        else:
            retval.lower = self.lower.copy()
            retval.diag = self.diag + _as_band(other, self.size)
            retval.upper = self.upper.copy()
        return retval

    def mult(self, u: np.ndarray | float) -> "TripleBandLinearOp":
        """Scale each row ``i`` by ``u[i]``."""
        s = _as_band(u, self.size)
        retval = self._empty_like()
        retval.lower = self.lower * s
        retval.diag = self.diag * s
        retval.upper = self.upper * s
        return retval

    def axpyb(
        self,
        a: np.ndarray | float | None,
        x: "TripleBandLinearOp",
        y: "TripleBandLinearOp",
        b: np.ndarray | float | None,
    ) -> None:
        """Set this operator to ``a * x + y + b`` (``b`` on the diagonal), in place."""
        if a is None:
            self.lower = y.lower.copy()
            self.diag = y.diag.copy()
            self.upper = y.upper.copy()
        else:
            s = _as_band(a, self.size)
            self.lower = y.lower + s * x.lower
            self.diag = y.diag + s * x.diag
            self.upper = y.upper + s * x.upper
        if b is not None:
            self.diag = self.diag + _as_band(b, self.size)

    def solve_splitting(self, r: np.ndarray, a: float, b: float = 1.0) -> np.ndarray:
        """Solve ``(b * I + a * T) x = r`` along this operator's direction."""
        r = np.asarray(r, dtype=float)
        if r.size != self.size:
            raise ValidationError("inconsistent size of rhs")
        last = self.mesher.layout.dim[self.direction] - 1
        if np.any(self.lower[self._coord == 0] != 0.0) or np.any(
            self.upper[self._coord == last] != 0.0
        ):
            raise ValidationError("removing non zero entry!")

        rev = self.reverse_index
        lower = a * self.lower[rev]
        diag = b + a * self.diag[rev]
        upper = a * self.upper[rev]
        x = _solve_tridiagonal_thomas(lower[1:], diag, upper[:-1], r[rev])
        retval = np.empty_like(x)
        retval[rev] = x
        return retval

    def to_matrix(self) -> sparse.csr_matrix:
        n = self.size
        rows = np.concatenate([np.arange(n)] * 3)
        cols = np.concatenate([self.i0, np.arange(n), self.i2])
        data = np.concatenate([self.lower, self.diag, self.upper])
        return sparse.coo_matrix((data, (rows, cols)), shape=(n, n)).tocsr()


class FirstDerivativeOp(TripleBandLinearOp):
    """Central first derivative on a non-uniform mesh, one-sided at the edges."""

    def __init__(self, direction: int, mesher: "FdmMesherComposite") -> None:
        super().__init__(direction, mesher)
        hm = mesher.dminus_array(direction)
        hp = mesher.dplus_array(direction)
        coord = self._coord
        last = mesher.layout.dim[direction] - 1
        with np.errstate(invalid="ignore", divide="ignore"):
            lower = -hp / (hm * (hm + hp))
            diag = (hp - hm) / (hm * hp)
            upper = hm / (hp * (hm + hp))
            first, end = coord == 0, coord == last
            self.lower = np.where(first, 0.0, np.where(end, -1.0 / hm, lower))
            self.diag = np.where(first, -1.0 / hp, np.where(end, 1.0 / hm, diag))
            self.upper = np.where(first, 1.0 / hp, np.where(end, 0.0, upper))


class SecondDerivativeOp(TripleBandLinearOp):
    """Central second derivative on a non-uniform mesh, zero at the edges."""

    def __init__(self, direction: int, mesher: "FdmMesherComposite") -> None:
        super().__init__(direction, mesher)
        hm = mesher.dminus_array(direction)
        hp = mesher.dplus_array(direction)
        coord = self._coord
        edge = (coord == 0) | (coord == mesher.layout.dim[direction] - 1)
        with np.errstate(invalid="ignore", divide="ignore"):
            self.lower = np.where(edge, 0.0, 2.0 / (hm * (hm + hp)))
            self.diag = np.where(edge, 0.0, -2.0 / (hm * hp))
            self.upper = np.where(edge, 0.0, 2.0 / (hp * (hm + hp)))


class FdmLinearOpComposite(ABC):
    """Operator interface the time-stepping schemes rely on.

    ``size`` is the number of splitting directions.  ``set_time(t1, t2)``
    freezes time-dependent coefficients on ``[t1, t2]`` (``t1 <= t2``).
    """

    mesher: "FdmMesherComposite"

    @abstractmethod
    def size(self) -> int: ...

    @abstractmethod
    def set_time(self, t1: float, t2: float) -> None: ...

    @abstractmethod
    def apply(self, r: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def apply_mixed(self, r: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def apply_direction(self, direction: int, r: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def solve_splitting(self, direction: int, r: np.ndarray, s: float) -> np.ndarray: ...

    def preconditioner(self, r: np.ndarray, s: float) -> np.ndarray:
        return self.solve_splitting(0, r, s)

    @abstractmethod
    def to_matrix_decomp(self) -> list[sparse.csr_matrix]: ...

    def to_matrix(self) -> sparse.csr_matrix:
        decomp = self.to_matrix_decomp()
        retval = decomp[0]
        for m in decomp[1:]:
            retval = retval + m
        return retval


class _OneDirectionOp(FdmLinearOpComposite):
    """Shared plumbing for operators acting along a single direction."""

    def __init__(self, mesher: "FdmMesherComposite", direction: int) -> None:
        self.mesher = mesher
        self.direction = direction
        self.map_t = TripleBandLinearOp(direction, mesher)

    def size(self) -> int:
        return 1

    def apply(self, r: np.ndarray) -> np.ndarray:
        return self.map_t.apply(r)

    def apply_mixed(self, r: np.ndarray) -> np.ndarray:
        return np.zeros_like(np.asarray(r, dtype=float))

    def apply_direction(self, direction: int, r: np.ndarray) -> np.ndarray:
        if direction == self.direction:
            return self.map_t.apply(r)
        return np.zeros_like(np.asarray(r, dtype=float))

    def solve_splitting(self, direction: int, r: np.ndarray, s: float) -> np.ndarray:
        if direction == self.direction:
            return self.map_t.solve_splitting(r, s)
        return np.array(r, dtype=float)

    def preconditioner(self, r: np.ndarray, s: float) -> np.ndarray:
        return self.solve_splitting(self.direction, r, s)

    def to_matrix_decomp(self) -> list[sparse.csr_matrix]:
        return [self.map_t.to_matrix()]


class FdmBlackScholesOp(_OneDirectionOp):
    """Black-Scholes generator in log-spot ``x = ln S``.

    ``L = (r - q - v/2) d/dx + (v/2) d2/dx2 - r`` with ``v`` the forward
    Black variance rate on the step, or the squared local volatility at the
    step midpoint when ``local_vol`` is set.  A ``quanto_helper`` lowers
    the drift by its quanto adjustment at volatility ``sqrt(v)``.
    """

    def __init__(
        self,
        mesher: "FdmMesherComposite",
        process: "BlackScholesProcess",
        strike: float,
        local_vol: bool = False,
        illegal_local_vol_overwrite: float | None = None,
        direction: int = 0,
        quanto_helper: "FdmQuantoHelper | None" = None,
    ) -> None:
        super().__init__(mesher, direction)
        self.process = process
        self.strike = strike
        self.quanto_helper = quanto_helper
        self._local_vol: Callable[[float, np.ndarray], np.ndarray] | None = None
        if local_vol:
            if process.local_vol is None:
                raise ValidationError("local volatility requested but process has none")
            self._local_vol = process.local_vol
            self._spots = np.exp(mesher.locations(direction))
        self.illegal_local_vol_overwrite = illegal_local_vol_overwrite
        self.dx_map = FirstDerivativeOp(direction, mesher)
        self.dxx_map = SecondDerivativeOp(direction, mesher)

    def _local_variance(self, t: float) -> np.ndarray:
        overwrite = self.illegal_local_vol_overwrite
        if overwrite is None:
            vol = np.asarray(self._local_vol(t, self._spots), dtype=float)
            return vol * vol
        try:
            vol = np.asarray(self._local_vol(t, self._spots), dtype=float)
        except (ValueError, ArithmeticError):
            logger.debug("local vol evaluation failed at t=%.6f, using overwrite", t)
            return np.full(self._spots.size, overwrite * overwrite)
        return np.where(np.isfinite(vol), vol * vol, overwrite * overwrite)

    def set_time(self, t1: float, t2: float) -> None:
        r = self.process.risk_free_curve.forward_rate(t1, t2)
        q = self.process.dividend_forward_rate(t1, t2)
        if self._local_vol is not None:
            v = self._local_variance(0.5 * (t1 + t2))
        else:
            v = np.full(self.map_t.size, self.process.black_variance(t1, t2) / (t2 - t1))
        drift = r - q - 0.5 * v
        if self.quanto_helper is not None:
            drift = drift - self.quanto_helper.quanto_adjustment(np.sqrt(v), t1, t2)
        self.map_t.axpyb(drift, self.dx_map, self.dxx_map.mult(0.5 * v), -r)


class FdmHullWhiteOp(_OneDirectionOp):
    """Hull-White generator in the state ``x``.

    ``L = -a x d/dx + (sigma^2/2) d2/dx2 - (x + alpha)`` with ``alpha``
    averaged over the step end points.
    """

    def __init__(self, mesher: "FdmMesherComposite", model: "HullWhite", direction: int = 0) -> None:
        super().__init__(mesher, direction)
        self.model = model
        self.x = mesher.locations(direction)
        self.dz_map = (
            FirstDerivativeOp(direction, mesher)
            .mult(-self.x * model.a)
            .add(SecondDerivativeOp(direction, mesher).mult(0.5 * model.sigma * model.sigma))
        )

    def set_time(self, t1: float, t2: float) -> None:
        phi = 0.5 * (self.model.alpha(t1) + self.model.alpha(t2))
        self.map_t.axpyb(None, self.dz_map, self.dz_map, -(self.x + phi))
