"""Boundary conditions applied around each scheme stage.

An empty boundary set means natural boundaries: the one-sided stencils of
the operators at the mesh edges.  ``FdmDirichletBoundary`` pins the grid to
a fixed value on one side of one direction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

import numpy as np

from ..enums import BoundarySide
from ..exceptions import ConfigurationError

if TYPE_CHECKING:
    from .meshers import FdmMesherComposite
    from .operators import FdmLinearOpComposite

__all__ = ["FdmDirichletBoundary", "BoundaryConditionSchemeHelper"]


class FdmDirichletBoundary:
    def __init__(
        self,
        mesher: "FdmMesherComposite",
        value: float,
        direction: int,
        side: BoundarySide | str,
    ) -> None:
        if isinstance(side, str):
            side = BoundarySide(side)
        if not isinstance(side, BoundarySide):
            raise ConfigurationError(f"side must be a BoundarySide, got {side!r}")
        self.side = side
        self.value = float(value)
        self.direction = direction

        coord = mesher.layout.coordinate_array(direction)
        edge = 0 if side is BoundarySide.LOWER else mesher.layout.dim[direction] - 1
        self.indices = np.flatnonzero(coord == edge)

    def set_time(self, t: float) -> None:
        pass

    def apply_before_applying(self, op: "FdmLinearOpComposite") -> None:
        pass

    def apply_after_applying(self, values: np.ndarray) -> None:
        values[self.indices] = self.value

    def apply_before_solving(self, op: "FdmLinearOpComposite", rhs: np.ndarray) -> None:
        rhs[self.indices] = self.value

    def apply_after_solving(self, values: np.ndarray) -> None:
        values[self.indices] = self.value


class BoundaryConditionSchemeHelper:
    """Fans every hook out to all boundary conditions, in order."""

    def __init__(self, bc_set: Sequence[FdmDirichletBoundary] | None) -> None:
        self.bc_set = list(bc_set or [])

    def __len__(self) -> int:
        return len(self.bc_set)

    def set_time(self, t: float) -> None:
        for bc in self.bc_set:
            bc.set_time(t)

    def apply_before_applying(self, op: "FdmLinearOpComposite") -> None:
        for bc in self.bc_set:
            bc.apply_before_applying(op)

    def apply_after_applying(self, values: np.ndarray) -> None:
        for bc in self.bc_set:
            bc.apply_after_applying(values)

    def apply_before_solving(self, op: "FdmLinearOpComposite", rhs: np.ndarray) -> None:
        for bc in self.bc_set:
            bc.apply_before_solving(op, rhs)

    def apply_after_solving(self, values: np.ndarray) -> None:
        for bc in self.bc_set:
            bc.apply_after_solving(values)
