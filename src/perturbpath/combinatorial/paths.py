"""Shortest-path algorithms on grid graphs.

Both algorithms charge the weight of the destination cell to every move, so
the weight of a path is the sum of its cell weights minus the source cell.
Paths are lists of row-major vertex indices, empty when no path exists.
"""

from __future__ import annotations

import heapq
from logging import getLogger
from typing import TYPE_CHECKING

import numpy as np

from perturbpath.models.grid import GridGraph

if TYPE_CHECKING:
  from perturbpath.models.types import Connectivity, PathMatrix

logger = getLogger(__name__)


def _endpoints(graph: GridGraph, source: int, destination: int | None) -> tuple[int, int]:
  """Resolve and check the source and destination vertices."""
  nv = graph.nv()
  destination = nv - 1 if destination is None else destination
  for name, vertex in (("source", source), ("destination", destination)):
    if not 0 <= vertex < nv:
      msg = f"{name} {vertex} is outside a grid with {nv} vertices."
      raise ValueError(msg)
  return source, destination


def grid_dijkstra(graph: GridGraph, source: int = 0, destination: int | None = None) -> list[int]:
  """Find a minimum-weight path with Dijkstra's algorithm.

  Args:
    graph: Grid graph with non-negative cell weights. Cells of weight +inf
      cannot be entered.
    source: Index of the first vertex. Defaults to the top-left cell.
    destination: Index of the last vertex. Defaults to the bottom-right cell.

  Returns:
    The vertices of the path from source to destination, or an empty list
    when the destination cannot be reached.

  Raises:
    ValueError: If a weight is negative or an endpoint is outside the grid.

  """
  source, destination = _endpoints(graph, source, destination)
  weights = graph.vertex_weights.ravel()
  if (weights < 0).any():
    msg = "grid_dijkstra requires non-negative weights; use grid_bellman_ford instead."
    raise ValueError(msg)

  nv = graph.nv()
  dists = np.full(nv, np.inf)
  parents = np.full(nv, -1, dtype=np.int64)
  done = np.zeros(nv, dtype=bool)
  dists[source] = 0.0
  queue: list[tuple[float, int]] = [(0.0, source)]
  while queue:
    d_u, u = heapq.heappop(queue)
    if done[u]:
      continue
    done[u] = True
    if u == destination:
      break
    for v in graph.outneighbors(u):
      if done[v] or np.isinf(weights[v]):
        continue
      d_v_through_u = d_u + weights[v]
      if d_v_through_u < dists[v]:
        dists[v] = d_v_through_u
        parents[v] = u
        heapq.heappush(queue, (d_v_through_u, v))

  if np.isinf(dists[destination]):
    logger.debug("No path from %d to %d.", source, destination)
    return []
  path = [destination]
  while path[-1] != source:
    path.append(int(parents[path[-1]]))
  path.reverse()
  return path


def _in_neighbor_table(graph: GridGraph) -> np.ndarray:
  """Return a (nv, num_directions) table of in-neighbours, -1 where off-grid."""
  rows, cols = np.divmod(np.arange(graph.nv()), graph.width)
  table = np.full((graph.nv(), len(graph.directions)), -1, dtype=np.int64)
  for slot, (d_row, d_col) in enumerate(graph.directions):
    u_rows, u_cols = rows - d_row, cols - d_col
    inside = (u_rows >= 0) & (u_rows < graph.height) & (u_cols >= 0) & (u_cols < graph.width)
    table[inside, slot] = u_rows[inside] * graph.width + u_cols[inside]
  return table


def grid_bellman_ford(
  graph: GridGraph,
  source: int = 0,
  destination: int | None = None,
  length_max: int | None = None,
) -> list[int]:
  """Find a minimum-weight path of at most ``length_max`` moves, negative weights allowed.

  ``dists[v, k]`` is the minimum weight of a walk reaching ``v`` from the
  source in exactly ``k`` moves. Moving from ``u`` to ``v`` charges the
  weight of ``v``. Among equally good in-neighbours the first one in
  direction order is kept, and among equally good lengths the shortest.

  With negative weights the optimum may be a walk that revisits cells. The
  returned walk starts at the last visit of the source.

  Args:
    graph: Grid graph with arbitrary cell weights.
    source: Index of the first vertex. Defaults to the top-left cell.
    destination: Index of the last vertex. Defaults to the bottom-right cell.
    length_max: Maximum number of moves. Defaults to the number of vertices.

  Returns:
    The vertices of the walk from source to destination, or an empty list
    when no walk of at most ``length_max`` moves exists.

  """
  source, destination = _endpoints(graph, source, destination)
  nv = graph.nv()
  length_max = nv if length_max is None else length_max
  if length_max < 0:
    msg = f"length_max must be non-negative, got {length_max}."
    raise ValueError(msg)

  weights = graph.vertex_weights.ravel()
  in_neighbors = _in_neighbor_table(graph)
  off_grid = in_neighbors < 0
  safe_in_neighbors = np.where(off_grid, 0, in_neighbors)
  vertices = np.arange(nv)

  dists = np.full((nv, length_max + 1), np.inf)
  parents = np.full((nv, length_max + 1), -1, dtype=np.int64)
  dists[source, 0] = 0.0
  for k in range(length_max):
    through = np.where(off_grid, np.inf, dists[safe_in_neighbors, k])
    best_slot = np.argmin(through, axis=1)
    best = through[vertices, best_slot]
    reached = np.isfinite(best)
    if not reached.any():
      break
    dists[reached, k + 1] = best[reached] + weights[reached]
    parents[reached, k + 1] = in_neighbors[reached, best_slot[reached]]

  k_short = int(np.argmin(dists[destination]))
  if np.isinf(dists[destination, k_short]):
    logger.debug("No path with at most %d moves from %d to %d.", length_max, source, destination)
    return []

  # Backtracking stops at the first return to the source, so the loops of a
  # walk that revisits it are dropped.
  path = [destination]
  k = k_short
  while path[-1] != source:
    parent = int(parents[path[-1], k])
    if parent < 0:
      return []
    path.append(parent)
    k -= 1
  path.reverse()
  return path


def path_to_matrix(graph: GridGraph, path: list[int]) -> np.ndarray:
  """Mark the cells visited by ``path`` in a (height, width) binary matrix."""
  y = np.zeros((graph.height, graph.width))
  if path:
    rows, cols = np.divmod(np.asarray(path), graph.width)
    y[rows, cols] = 1.0
  return y


def matrix_to_path(
  y: PathMatrix,
  connectivity: Connectivity = "queen",
  source: int = 0,
  destination: int | None = None,
) -> list[int]:
  """Order the marked cells of ``y`` into a path from source to destination.

  Every marked cell must be used exactly once. Returns an empty list when the
  marked cells do not form such a path.
  """
  marked = np.asarray(y) > 0.5  # noqa: PLR2004
  graph = GridGraph(np.zeros(marked.shape), connectivity=connectivity)
  source, destination = _endpoints(graph, source, destination)
  cells = set(np.flatnonzero(marked).tolist())
  if source not in cells or destination not in cells:
    return []

  path = [source]
  # Depth-first search with explicit neighbour iterators.
  stack = [iter(graph.neighbors(source))]
  visited = {source}
  while stack:
    if path[-1] == destination and len(path) == len(cells):
      return path
    for v in stack[-1]:
      if v in cells and v not in visited:
        visited.add(v)
        path.append(v)
        stack.append(iter(graph.neighbors(v)))
        break
    else:
      stack.pop()
      visited.discard(path.pop())
  return []


def path_weight(graph: GridGraph, path: list[int]) -> float:
  """Weight of ``path`` under the destination-cell convention (source not charged)."""
  if not path:
    return float("inf")
  return float(sum(graph.vertex_weight(v) for v in path[1:]))


def is_valid_path(
  graph: GridGraph,
  path: list[int],
  source: int = 0,
  destination: int | None = None,
) -> bool:
  """Check that ``path`` links source to destination through adjacent, distinct cells."""
  source, destination = _endpoints(graph, source, destination)
  if not path or path[0] != source or path[-1] != destination:
    return False
  if len(set(path)) != len(path):
    return False
  return all(graph.has_edge(u, v) for u, v in zip(path[:-1], path[1:], strict=True))
