"""Linear layout of an N-dimensional mesh onto a flat grid vector.

Direction 0 varies fastest.  Neighbour lookups reflect at the edges, so
index ``-1`` maps to coordinate ``1`` and ``dim`` maps to ``dim - 2``.
"""

from __future__ import annotations

from typing import Iterator, Sequence

import numpy as np

from ..exceptions import ValidationError


class FdmLinearOpLayout:
    def __init__(self, dim: Sequence[int]) -> None:
        dim = [int(d) for d in dim]
        if not dim or any(d < 1 for d in dim):
            raise ValidationError(f"layout dimensions must be positive, got {dim}")
        self._dim = tuple(dim)
        spacing = [1]
        for d in dim[:-1]:
            spacing.append(spacing[-1] * d)
        self._spacing = tuple(spacing)
        self._size = spacing[-1] * dim[-1]

    @property
    def dim(self) -> tuple[int, ...]:
        return self._dim

    @property
    def spacing(self) -> tuple[int, ...]:
        return self._spacing

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[int]:
        return iter(range(self._size))

    def coordinates(self, index: int) -> tuple[int, ...]:
        coords = []
        for d in self._dim:
            index, c = divmod(index, d)
            coords.append(c)
        return tuple(coords)

    def index(self, coordinates: Sequence[int]) -> int:
        return int(sum(c * s for c, s in zip(coordinates, self._spacing)))

    def coordinate_array(self, direction: int) -> np.ndarray:
        """Coordinate along ``direction`` for every linear index."""
        idx = np.arange(self._size)
        return (idx // self._spacing[direction]) % self._dim[direction]

    def neighbourhood(self, index: int, direction: int, offset: int) -> int:
        coord = (index // self._spacing[direction]) % self._dim[direction]
        base = index - coord * self._spacing[direction]
        return base + self._reflect(coord + offset, direction) * self._spacing[direction]

    def neighbourhood_array(self, direction: int, offset: int) -> np.ndarray:
        """Vectorized :meth:`neighbourhood` over all linear indices."""
        idx = np.arange(self._size)
        coord = self.coordinate_array(direction)
        shifted = coord + offset
        n = self._dim[direction]
        shifted = np.where(shifted < 0, -shifted, shifted)
        shifted = np.where(shifted >= n, 2 * (n - 1) - shifted, shifted)
        # a single-node direction reflects onto itself
        shifted = np.clip(shifted, 0, n - 1)
        return idx - coord * self._spacing[direction] + shifted * self._spacing[direction]

    def _reflect(self, coord: int, direction: int) -> int:
        n = self._dim[direction]
        if coord < 0:
            coord = -coord
        elif coord >= n:
            coord = 2 * (n - 1) - coord
        return min(max(coord, 0), n - 1)
