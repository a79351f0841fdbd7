"""Grid graph data structure used by the shortest-path oracles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
  from collections.abc import Iterator

  from perturbpath.models.types import Connectivity

Direction = tuple[int, int]

ROOK_DIRECTIONS: tuple[Direction, ...] = ((-1, 0), (0, -1), (0, 1), (1, 0))
"""Offsets (row, col) of the 4 orthogonal neighbours."""
QUEEN_DIRECTIONS: tuple[Direction, ...] = (
  (-1, -1),
  (-1, 0),
  (-1, 1),
  (0, -1),
  (0, 1),
  (1, -1),
  (1, 0),
  (1, 1),
)
"""Offsets (row, col) of the 8 neighbours, diagonals included."""

DIRECTIONS: dict[str, tuple[Direction, ...]] = {
  "rook": ROOK_DIRECTIONS,
  "queen": QUEEN_DIRECTIONS,
}


@dataclass(frozen=True)
class GridGraph:
  """A rectangular grid of cells seen as a digraph with per-cell weights.

  Vertices are indexed row-major from 0, so vertex ``v`` is the cell
  ``divmod(v, width)``. An arc ``u -> v`` exists when ``v - u`` is one of the
  connectivity offsets and both cells are inside the grid. Its weight is the
  weight of the destination cell ``v``. The adjacency is symmetric, hence
  in-neighbours and out-neighbours coincide.

  Attributes:
      vertex_weights: (height, width) array of cell weights. Stored read-only.
      connectivity: Neighbour pattern, "rook" or "queen".

  """

  vertex_weights: np.ndarray
  connectivity: Connectivity = field(default="queen")

  def __post_init__(self) -> None:
    """Validate and freeze the weight matrix."""
    if self.connectivity not in DIRECTIONS:
      msg = f"connectivity must be one of {list(DIRECTIONS)}, got {self.connectivity!r}."
      raise ValueError(msg)
    weights = np.array(self.vertex_weights, dtype=np.float64)
    if weights.ndim != 2 or 0 in weights.shape:  # noqa: PLR2004
      msg = f"vertex_weights must be a non-empty 2D matrix, got shape {weights.shape}."
      raise ValueError(msg)
    if np.isnan(weights).any():
      msg = "vertex_weights must not contain NaN."
      raise ValueError(msg)
    weights.flags.writeable = False
    object.__setattr__(self, "vertex_weights", weights)

  @property
  def height(self) -> int:
    """Number of rows."""
    return self.vertex_weights.shape[0]

  @property
  def width(self) -> int:
    """Number of columns."""
    return self.vertex_weights.shape[1]

  @property
  def directions(self) -> tuple[Direction, ...]:
    """Neighbour offsets for the configured connectivity."""
    return DIRECTIONS[self.connectivity]

  def nv(self) -> int:
    """Return the number of vertices."""
    return self.height * self.width

  def coord_to_index(self, row: int, col: int) -> int:
    """Convert a cell to its linear vertex index."""
    if not (0 <= row < self.height and 0 <= col < self.width):
      msg = f"Cell ({row}, {col}) is outside a {self.height}x{self.width} grid."
      raise IndexError(msg)
    return row * self.width + col

  def index_to_coord(self, v: int) -> tuple[int, int]:
    """Convert a linear vertex index to its cell."""
    if not 0 <= v < self.nv():
      msg = f"Vertex {v} is outside a grid with {self.nv()} vertices."
      raise IndexError(msg)
    row, col = divmod(v, self.width)
    return row, col

  def neighbors(self, v: int) -> Iterator[int]:
    """Yield the neighbours of ``v``, in direction order, without wraparound."""
    row, col = self.index_to_coord(v)
    for d_row, d_col in self.directions:
      n_row, n_col = row + d_row, col + d_col
      if 0 <= n_row < self.height and 0 <= n_col < self.width:
        yield n_row * self.width + n_col

  inneighbors = neighbors
  outneighbors = neighbors

  def has_edge(self, u: int, v: int) -> bool:
    """Check whether ``u -> v`` is an arc of the grid."""
    return v in self.neighbors(u)

  def vertex_weight(self, v: int) -> float:
    """Weight of cell ``v``, charged to every arc entering it."""
    row, col = self.index_to_coord(v)
    return float(self.vertex_weights[row, col])
