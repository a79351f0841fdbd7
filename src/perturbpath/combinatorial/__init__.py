"""Combinatorial oracles and their differentiable perturbed wrappers."""

from .losses import create_fenchel_young_loss, create_pushforward_loss
from .maximizers import (
  MAXIMIZER_REGISTRY,
  bellman_maximizer,
  dijkstra_maximizer,
  get_maximizer,
  polytope_maximizer,
  register_maximizer,
  regular_polygon,
)
from .paths import (
  grid_bellman_ford,
  grid_dijkstra,
  is_valid_path,
  matrix_to_path,
  path_to_matrix,
  path_weight,
)
from .perturbed import (
  compute_probability_distribution,
  create_perturbed_layer,
  draw_perturbations,
  perturbed_layer_from_config,
  perturbed_samples,
  solve_batch,
)

__all__ = [
  "MAXIMIZER_REGISTRY",
  "bellman_maximizer",
  "compute_probability_distribution",
  "create_fenchel_young_loss",
  "create_perturbed_layer",
  "create_pushforward_loss",
  "dijkstra_maximizer",
  "draw_perturbations",
  "get_maximizer",
  "grid_bellman_ford",
  "grid_dijkstra",
  "is_valid_path",
  "matrix_to_path",
  "path_to_matrix",
  "path_weight",
  "perturbed_layer_from_config",
  "perturbed_samples",
  "polytope_maximizer",
  "register_maximizer",
  "regular_polygon",
  "solve_batch",
]
