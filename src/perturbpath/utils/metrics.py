"""Solution-quality metrics used to monitor learning.

The cost ratio compares the true cost of the path predicted from an image
to the true cost of the optimal path. It is at least 1 for an optimal
label and is a monitoring metric only, never a training signal.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
import numpy as np

if TYPE_CHECKING:
  from collections.abc import Callable, Sequence

  from jaxtyping import Array, Float

  from perturbpath.models.types import CostMatrix, Image, Maximizer, PathMatrix
  from perturbpath.training.data import DatasetItem

  Embedding = Callable[[Image], CostMatrix]

logger = getLogger(__name__)


def path_cost(y: PathMatrix, c_true: CostMatrix) -> Float[Array, ""]:
  """Cost ``<y, c_true>`` of a path, every visited cell included."""
  return jnp.vdot(jnp.asarray(y), jnp.asarray(c_true))


def _ratio(y_pred: np.ndarray, y_true: PathMatrix, c_true: CostMatrix) -> float:
  """Ratio of true costs, NaN with a warning when a path is empty or the optimum costs 0."""
  if not np.any(y_pred):
    logger.warning("Maximizer returned an empty path; cost ratio is undefined.")
    return float("nan")
  optimal_cost = float(path_cost(y_true, c_true))
  if optimal_cost == 0:
    logger.warning("Reference path has zero cost; cost ratio is undefined.")
    return float("nan")
  return float(path_cost(y_pred, c_true)) / optimal_cost


def cost_ratio(
  embedding: Embedding,
  x: Image,
  y_true: PathMatrix,
  c_true: CostMatrix,
  maximizer: Maximizer,
) -> float:
  """Ratio between the true cost of the path predicted from ``x`` and that of ``y_true``.

  Args:
    embedding: Function mapping an image to a score matrix.
    x: Input image.
    y_true: Optimal path under ``c_true``.
    c_true: True cell costs.
    maximizer: Oracle applied to the predicted scores.

  Returns:
    The cost ratio, >= 1 when ``y_true`` is optimal, or NaN when undefined.

  """
  theta = np.asarray(embedding(x))
  return _ratio(maximizer(theta), y_true, c_true)


def batch_cost_ratios(
  embedding: Embedding,
  items: Sequence[DatasetItem],
  maximizer: Maximizer,
) -> Float[np.ndarray, "num_items"]:
  """Cost ratio of every item, computed from one batched embedding call."""
  if not items:
    return np.zeros((0,))
  images = jnp.stack([jnp.asarray(item.image) for item in items])
  thetas = np.asarray(jax.vmap(embedding)(images))
  return np.array(
    [
      _ratio(maximizer(theta), item.path, item.cost)
      for theta, item in zip(thetas, items, strict=True)
    ],
  )


def cost_gap(
  embedding: Embedding,
  items: Sequence[DatasetItem],
  maximizer: Maximizer,
) -> float:
  """Average suboptimality of the predicted paths, in percent.

  Items with an undefined ratio are skipped with a warning. Returns NaN if
  no item has a defined ratio.
  """
  ratios = batch_cost_ratios(embedding, items, maximizer)
  defined = np.isfinite(ratios)
  if not defined.all():
    logger.warning(
      "Skipping %d of %d items with undefined cost ratio.",
      int((~defined).sum()),
      len(ratios),
    )
  if not defined.any():
    return float("nan")
  return float((ratios[defined].mean() - 1.0) * 100.0)
