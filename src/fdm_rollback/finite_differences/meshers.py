"""Spatial meshes for the finite-difference rollback.

One-dimensional meshers hold the node locations along one axis together
with the forward/backward spacings; ``FdmMesherComposite`` combines them
into the N-dimensional mesh the operators and step conditions work on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence
import datetime as dt
import logging
import math

import numpy as np
from scipy.stats import norm

from ..enums import DayCountConvention
from ..exceptions import ValidationError
from ..utils import calculate_year_fraction
from .layout import FdmLinearOpLayout

if TYPE_CHECKING:
    from ..market_environment import BlackScholesProcess, HullWhite

logger = logging.getLogger(__name__)

__all__ = [
    "Fdm1dMesher",
    "Uniform1dMesher",
    "Concentrating1dMesher",
    "FdmBlackScholesMesher",
    "FdmHullWhiteMesher",
    "FdmMesher",
    "FdmMesherComposite",
]


class Fdm1dMesher:
    """Sorted node locations along one axis.

    ``dplus[i] = x[i+1] - x[i]`` and ``dminus[i] = x[i] - x[i-1]``; the
    missing spacing at either end is NaN.
    """

    def __init__(self, locations: Sequence[float]) -> None:
        x = np.asarray(locations, dtype=float)
        if x.ndim != 1 or x.size < 2:
            raise ValidationError("a 1d mesher needs at least two locations")
        if np.any(np.diff(x) <= 0.0):
            raise ValidationError("mesher locations must be strictly increasing")
        self._locations = x
        self._dplus = np.append(np.diff(x), np.nan)
        self._dminus = np.insert(np.diff(x), 0, np.nan)

    @property
    def size(self) -> int:
        return self._locations.size

    @property
    def locations(self) -> np.ndarray:
        return self._locations

    @property
    def dplus_values(self) -> np.ndarray:
        return self._dplus

    @property
    def dminus_values(self) -> np.ndarray:
        return self._dminus

    def location(self, i: int) -> float:
        return float(self._locations[i])

    def dplus(self, i: int) -> float:
        return float(self._dplus[i])

    def dminus(self, i: int) -> float:
        return float(self._dminus[i])


class Uniform1dMesher(Fdm1dMesher):
    def __init__(self, start: float, end: float, size: int) -> None:
        if not end > start:
            raise ValidationError("end must be larger than start")
        super().__init__(np.linspace(start, end, int(size)))


class Concentrating1dMesher(Fdm1dMesher):
    """Mesher concentrating nodes around ``c_point`` via a sinh transform.

    ``density`` is relative to the mesh width; smaller values concentrate
    more.  With ``require_c_point`` the transform is bent so that the
    concentration point is a mesh node.
    """

    def __init__(
        self,
        start: float,
        end: float,
        size: int,
        c_point: float | None = None,
        density: float | None = None,
        require_c_point: bool = False,
    ) -> None:
        if not end > start:
            raise ValidationError("end must be larger than start")
        if c_point is not None and not start <= c_point <= end:
            raise ValidationError("cPoint must be between start and end")
        if c_point is not None and density is None:
            raise ValidationError("density must be given if cPoint is given")
        if density is not None and density <= 0.0:
            raise ValidationError("density > 0 required")
        if require_c_point and c_point is None:
            raise ValidationError("cPoint is required in grid but not given")

        size = int(size)
        u = np.linspace(0.0, 1.0, size)
        if c_point is None:
            x = start + u * (end - start)
        else:
            scale = density * (end - start)
            c1 = math.asinh((start - c_point) / scale)
            c2 = math.asinh((end - c_point) / scale)
            if require_c_point and not (
                math.isclose(c_point, start) or math.isclose(c_point, end)
            ):
                z0 = -c1 / (c2 - c1)
                u0 = max(min(int(z0 * (size - 1) + 0.5), size - 2), 1) / (size - 1)
                u = np.interp(u, [0.0, u0, 1.0], [0.0, z0, 1.0])
            x = c_point + scale * np.sinh(c1 * (1.0 - u) + c2 * u)
        x[0], x[-1] = start, end
        super().__init__(x)


class FdmBlackScholesMesher(Fdm1dMesher):
    """Log-spot mesher for a Black-Scholes process.

    The range covers the forward path of the spot (including the drops at
    cash dividends) widened by ``scale_factor`` times the ``1 - eps``
    normal quantile of ``sigma * sqrt(T)``.
    """

    def __init__(
        self,
        size: int,
        process: "BlackScholesProcess",
        maturity: float,
        strike: float,
        x_min_constraint: float | None = None,
        x_max_constraint: float | None = None,
        eps: float = 0.0001,
        scale_factor: float = 1.5,
        c_point: tuple[float, float] | None = None,
        dividends: Sequence[tuple[dt.date, float]] | None = None,
        reference_date: dt.date | None = None,
        day_count: DayCountConvention = DayCountConvention.ACT_365F,
    ) -> None:
        spot = process.x0
        if spot <= 0.0:
            raise ValidationError("negative or null underlying given")
        if maturity <= 0.0:
            raise ValidationError("maturity must be positive")

        intermediate: list[tuple[float, float]] = []
        if dividends:
            if reference_date is None:
                raise ValidationError("reference_date is required with dividends")
            for div_date, amount in dividends:
                t = calculate_year_fraction(reference_date, div_date, day_count)
                if 0.0 <= t <= maturity:
                    intermediate.append((t, float(amount)))
        n_steps = int(max(2, 24.0 * maturity))
        intermediate.extend(((i + 1) * maturity / n_steps, 0.0) for i in range(n_steps))
        intermediate.sort()

        r_curve = process.risk_free_curve
        last_t = 0.0
        fwd = lo = hi = spot
        for t, amount in intermediate:
            fwd *= (
                float(r_curve.df(last_t)) / float(r_curve.df(t))
                * process.dividend_discount(t) / process.dividend_discount(last_t)
            )
            lo, hi = min(lo, fwd), max(hi, fwd)
            fwd -= amount
            lo, hi = min(lo, fwd), max(hi, fwd)
            last_t = t
        if lo <= 0.0:
            raise ValidationError("dividends exceed the forward of the underlying")

        norm_inv_eps = float(norm.ppf(1.0 - eps))
        sigma_sqrt_t = math.sqrt(process.black_variance(0.0, maturity))
        x_min = math.log(lo) - sigma_sqrt_t * norm_inv_eps * scale_factor
        x_max = math.log(hi) + sigma_sqrt_t * norm_inv_eps * scale_factor
        if x_min_constraint is not None:
            x_min = x_min_constraint
        if x_max_constraint is not None:
            x_max = x_max_constraint

        if c_point is not None and c_point[0] is not None and x_min <= math.log(c_point[0]) <= x_max:
            helper: Fdm1dMesher = Concentrating1dMesher(
                x_min, x_max, size, math.log(c_point[0]), c_point[1]
            )
        else:
            helper = Uniform1dMesher(x_min, x_max, size)
        logger.debug("Black-Scholes mesher x in [%.6f, %.6f] size=%d", x_min, x_max, size)
        super().__init__(helper.locations)


class FdmHullWhiteMesher(Fdm1dMesher):
    """Uniform mesher on the Hull-White state ``x`` around zero.

    Spans ``scale_factor`` times the ``1 - eps`` normal quantile of the
    stationary-corrected standard deviation of ``x(maturity)``.
    """

    def __init__(
        self,
        size: int,
        model: "HullWhite",
        maturity: float,
        eps: float = 1e-5,
        scale_factor: float = 1.0,
    ) -> None:
        if maturity <= 0.0:
            raise ValidationError("maturity must be positive")
        a, sigma = model.a, model.sigma
        std = sigma * math.sqrt((1.0 - math.exp(-2.0 * a * maturity)) / (2.0 * a))
        width = scale_factor * std * float(norm.ppf(1.0 - eps))
        super().__init__(np.linspace(-width, width, int(size)))


class FdmMesher(ABC):
    """N-dimensional mesh interface used by operators and conditions."""

    def __init__(self, layout: FdmLinearOpLayout) -> None:
        self._layout = layout

    @property
    def layout(self) -> FdmLinearOpLayout:
        return self._layout

    @abstractmethod
    def location(self, index: int, direction: int) -> float: ...

    @abstractmethod
    def locations(self, direction: int) -> np.ndarray: ...

    @abstractmethod
    def dplus(self, index: int, direction: int) -> float: ...

    @abstractmethod
    def dminus(self, index: int, direction: int) -> float: ...


class FdmMesherComposite(FdmMesher):
    """Tensor product of one-dimensional meshers, direction 0 first."""

    def __init__(self, *meshers: Fdm1dMesher, layout: FdmLinearOpLayout | None = None) -> None:
        if not meshers:
            raise ValidationError("at least one 1d mesher is required")
        if layout is None:
            layout = FdmLinearOpLayout([m.size for m in meshers])
        if len(layout.dim) != len(meshers):
            raise ValidationError("layout dimension does not match number of meshers")
        for i, m in enumerate(meshers):
            if m.size != layout.dim[i]:
                raise ValidationError(f"size of 1d mesher {i} does not fit to layout")
        super().__init__(layout)
        self._meshers = tuple(meshers)
        self._coords = [layout.coordinate_array(d) for d in range(len(meshers))]

    @property
    def fdm_1d_meshers(self) -> tuple[Fdm1dMesher, ...]:
        return self._meshers

    def location(self, index: int, direction: int) -> float:
        return self._meshers[direction].location(int(self._coords[direction][index]))

    def locations(self, direction: int) -> np.ndarray:
        return self._meshers[direction].locations[self._coords[direction]]

    def dplus(self, index: int, direction: int) -> float:
        return self._meshers[direction].dplus(int(self._coords[direction][index]))

    def dminus(self, index: int, direction: int) -> float:
        return self._meshers[direction].dminus(int(self._coords[direction][index]))

    def dplus_array(self, direction: int) -> np.ndarray:
        return self._meshers[direction].dplus_values[self._coords[direction]]

    def dminus_array(self, direction: int) -> np.ndarray:
        return self._meshers[direction].dminus_values[self._coords[direction]]
