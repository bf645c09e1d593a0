"""Inner (exercise) values on the mesh.

The solvers seed the grid at maturity with ``avg_inner_value`` and the
exercise conditions compare the grid against ``inner_value``.  Both are
indexed by the linear layout index.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable
import logging
import math

import numpy as np
from scipy.integrate import quad

if TYPE_CHECKING:
    from ..market_environment import HullWhite
    from .meshers import FdmMesherComposite

logger = logging.getLogger(__name__)

__all__ = [
    "FdmInnerValueCalculator",
    "FdmLogInnerValue",
    "FdmZeroInnerValue",
    "FdmHullWhiteZeroBondInnerValue",
]


class FdmInnerValueCalculator(ABC):
    mesher: "FdmMesherComposite"

    @abstractmethod
    def inner_value(self, index: int, t: float) -> float: ...

    @abstractmethod
    def avg_inner_value(self, index: int, t: float) -> float: ...

    def inner_values(self, t: float) -> np.ndarray:
        """``inner_value`` for every layout index."""
        return np.array([self.inner_value(i, t) for i in self.mesher.layout], dtype=float)

    def avg_inner_values(self, t: float) -> np.ndarray:
        return np.array([self.avg_inner_value(i, t) for i in self.mesher.layout], dtype=float)


class FdmLogInnerValue(FdmInnerValueCalculator):
    """Payoff of ``exp(x)`` on a log-spot direction.

    ``avg_inner_value`` averages the payoff over the cell
    ``[x - dminus/2, x + dplus/2]`` around each node, which smooths the
    kink of a vanilla payoff at maturity.  The averages depend only on the
    coordinate along ``direction`` and are computed once.
    """

    def __init__(
        self,
        payoff: Callable[[float | np.ndarray], float | np.ndarray],
        mesher: "FdmMesherComposite",
        direction: int = 0,
    ) -> None:
        self.payoff = payoff
        self.mesher = mesher
        self.direction = direction
        self._coord = mesher.layout.coordinate_array(direction)
        self._avg_cache: np.ndarray | None = None

    def inner_value(self, index: int, t: float) -> float:
        return float(self.payoff(math.exp(self.mesher.location(index, self.direction))))

    def inner_values(self, t: float) -> np.ndarray:
        return np.asarray(self.payoff(np.exp(self.mesher.locations(self.direction))), dtype=float)

    def avg_inner_value(self, index: int, t: float) -> float:
        return float(self._averages()[self._coord[index]])

    def avg_inner_values(self, t: float) -> np.ndarray:
        return self._averages()[self._coord]

    def _averages(self) -> np.ndarray:
        if self._avg_cache is None:
            m = self.mesher.fdm_1d_meshers[self.direction]
            self._avg_cache = np.array([self._cell_average(m, i) for i in range(m.size)])
        return self._avg_cache

    def _cell_average(self, m, i: int) -> float:
        loc = m.location(i)
        a = loc - 0.5 * m.dminus(i) if i > 0 else loc
        b = loc + 0.5 * m.dplus(i) if i < m.size - 1 else loc
        point = float(self.payoff(math.exp(loc)))
        if not b > a:
            return point

        def f(x: float) -> float:
            return float(self.payoff(math.exp(x)))

        points = None
        strike = getattr(self.payoff, "strike", None)
        if strike is not None and strike > 0.0 and a < math.log(strike) < b:
            points = [math.log(strike)]
        result = quad(f, a, b, points=points, full_output=1)
        if len(result) > 3:
            # integration warning, fall back to the node value
            logger.debug("cell average at x=%.6f did not converge: %s", loc, result[3])
            return point
        return result[0] / (b - a)


class FdmZeroInnerValue(FdmInnerValueCalculator):
    def __init__(self, mesher: "FdmMesherComposite | None" = None) -> None:
        self.mesher = mesher

    def inner_value(self, index: int, t: float) -> float:
        return 0.0

    def avg_inner_value(self, index: int, t: float) -> float:
        return 0.0


class FdmHullWhiteZeroBondInnerValue(FdmInnerValueCalculator):
    """Payoff applied to the zero bond maturing at ``bond_maturity``.

    The bond is priced analytically in the Hull-White state ``x`` at each
    node; past the bond maturity it is worth one.
    """

    def __init__(
        self,
        model: "HullWhite",
        mesher: "FdmMesherComposite",
        bond_maturity: float,
        payoff: Callable[[float | np.ndarray], float | np.ndarray] | None = None,
        direction: int = 0,
    ) -> None:
        self.model = model
        self.mesher = mesher
        self.bond_maturity = float(bond_maturity)
        self.payoff = payoff if payoff is not None else (lambda p: p)
        self.direction = direction

    def _bond(self, t: float, x: float | np.ndarray) -> float | np.ndarray:
        if t >= self.bond_maturity:
            return np.ones_like(x, dtype=float) if isinstance(x, np.ndarray) else 1.0
        return self.model.discount_bond(t, self.bond_maturity, x)

    def inner_value(self, index: int, t: float) -> float:
        x = self.mesher.location(index, self.direction)
        return float(self.payoff(self._bond(t, x)))

    def inner_values(self, t: float) -> np.ndarray:
        x = self.mesher.locations(self.direction)
        return np.asarray(self.payoff(self._bond(t, x)), dtype=float)

    def avg_inner_value(self, index: int, t: float) -> float:
        return self.inner_value(index, t)

    def avg_inner_values(self, t: float) -> np.ndarray:
        return self.inner_values(t)
