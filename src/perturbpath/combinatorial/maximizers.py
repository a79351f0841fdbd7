"""Combinatorial maximizers wrapping the shortest-path algorithms.

A maximizer maps a score matrix ``theta`` to the incidence matrix of the
path maximizing ``<theta, y>``. Shortest paths minimize cost, so the grid is
built from ``-theta``.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Callable

import numpy as np

from perturbpath.combinatorial.paths import grid_bellman_ford, grid_dijkstra, path_to_matrix
from perturbpath.models.grid import GridGraph

if TYPE_CHECKING:
  from collections.abc import Sequence

  from perturbpath.models.perturbed import PerturbedConfig
  from perturbpath.models.types import Connectivity, CostMatrix, Maximizer, PathMatrix

MAXIMIZER_REGISTRY: dict[str, Maximizer] = {}


def register_maximizer(name: str) -> Callable[[Maximizer], Maximizer]:
  """Register a grid maximizer under ``name``."""

  def decorator(func: Maximizer) -> Maximizer:
    """Decorate to register a maximizer."""
    MAXIMIZER_REGISTRY[name] = func
    return func

  return decorator


def get_maximizer(config: PerturbedConfig) -> Maximizer:
  """Get the registered maximizer bound to the configured grid context."""
  if config.maximizer not in MAXIMIZER_REGISTRY:
    msg = (
      f"Unknown maximizer: '{config.maximizer}'. "
      f"Available maximizers: {list(MAXIMIZER_REGISTRY.keys())}."
    )
    raise ValueError(msg)
  return partial(MAXIMIZER_REGISTRY[config.maximizer], **config.maximizer_kwargs)


def _as_matrix(theta: CostMatrix) -> np.ndarray:
  theta = np.asarray(theta)
  if theta.ndim != 2:  # noqa: PLR2004
    msg = f"theta must be a (height, width) matrix, got shape {theta.shape}."
    raise ValueError(msg)
  return theta


@register_maximizer("dijkstra")
def dijkstra_maximizer(
  theta: CostMatrix,
  connectivity: Connectivity = "queen",
  **_kwargs,  # noqa: ANN003
) -> PathMatrix:
  """Best top-left to bottom-right path for non-positive scores ``theta``.

  Raises:
    ValueError: If some entry of ``theta`` is positive, i.e. a cell cost is negative.

  """
  theta = _as_matrix(theta)
  graph = GridGraph(-theta, connectivity=connectivity)
  path = grid_dijkstra(graph, 0, graph.nv() - 1)
  return path_to_matrix(graph, path).astype(theta.dtype)


@register_maximizer("bellman")
def bellman_maximizer(
  theta: CostMatrix,
  connectivity: Connectivity = "queen",
  length_max: int | None = None,
  **_kwargs,  # noqa: ANN003
) -> PathMatrix:
  """Best top-left to bottom-right path of at most ``length_max`` moves, any score sign."""
  theta = _as_matrix(theta)
  graph = GridGraph(-theta, connectivity=connectivity)
  path = grid_bellman_ford(graph, 0, graph.nv() - 1, length_max)
  return path_to_matrix(graph, path).astype(theta.dtype)


def polytope_maximizer(theta: np.ndarray, polytope: Sequence[np.ndarray]) -> np.ndarray:
  """Return the vertex of ``polytope`` maximizing ``<theta, v>``, first one on ties.

  A small linear oracle, handy to visualize perturbation on a 2D polygon.
  """
  vertices = np.asarray(polytope)
  theta = np.asarray(theta)
  return vertices[int(np.argmax(vertices @ theta))].astype(theta.dtype)


def regular_polygon(num_vertices: int) -> np.ndarray:
  """Vertices of the regular polygon inscribed in the unit circle, starting at (1, 0)."""
  if num_vertices < 3:  # noqa: PLR2004
    msg = f"A polygon needs at least 3 vertices, got {num_vertices}."
    raise ValueError(msg)
  angles = 2.0 * np.pi * np.arange(num_vertices) / num_vertices
  return np.stack([np.cos(angles), np.sin(angles)], axis=1)
