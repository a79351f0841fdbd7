"""Synthetic terrain dataset and batching helpers."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np

from perturbpath.combinatorial.maximizers import bellman_maximizer

if TYPE_CHECKING:
  from collections.abc import Iterator, Sequence

  from jaxtyping import Array, Float

  from perturbpath.models.training import DatasetConfig
  from perturbpath.models.types import Connectivity, CostMatrix, Image, PathMatrix

logger = getLogger(__name__)

TERRAIN_COSTS = np.array([1.0, 2.0, 5.0, 10.0], dtype=np.float32)
"""Traversal cost of each terrain class: road, grass, forest, water."""
TERRAIN_COLORS = np.array(
  [
    [0.6, 0.6, 0.6],
    [0.4, 0.8, 0.3],
    [0.1, 0.4, 0.1],
    [0.1, 0.3, 0.8],
  ],
  dtype=np.float32,
)
"""RGB colour of each terrain class."""
PIXEL_NOISE_SCALE = 0.05


class DatasetItem(NamedTuple):
  """One (image, mask, cost, path) example.

  Attributes:
      image: (3, height * pixels_per_cell, width * pixels_per_cell) RGB image in [0, 1].
      mask: (height, width) terrain class of each cell.
      cost: (height, width) true positive cell costs.
      path: (height, width) incidence matrix of the optimal path under ``cost``.

  """

  image: Image
  mask: Float[Array, "height width"]
  cost: CostMatrix
  path: PathMatrix


def render_terrain(
  classes: np.ndarray,
  pixels_per_cell: int,
  noise: np.ndarray,
) -> np.ndarray:
  """Render a class map as a channels-first image with additive pixel noise."""
  colors = TERRAIN_COLORS[classes]
  pixels = np.repeat(np.repeat(colors, pixels_per_cell, axis=0), pixels_per_cell, axis=1)
  pixels = np.clip(pixels + PIXEL_NOISE_SCALE * noise, 0.0, 1.0)
  return np.transpose(pixels, (2, 0, 1))


def generate_synthetic_dataset(
  config: DatasetConfig,
  connectivity: Connectivity = "queen",
) -> list[DatasetItem]:
  """Generate random terrains with their true costs and optimal paths.

  Optimal paths are computed with the Bellman-Ford maximizer on the negated
  true costs, for the given connectivity.
  """
  key = jax.random.PRNGKey(config.prng_seed)
  image_shape = (config.height * config.pixels_per_cell, config.width * config.pixels_per_cell, 3)
  items = []
  for _ in range(config.num_items):
    class_key, noise_key, key = jax.random.split(key, 3)
    classes = np.asarray(
      jax.random.randint(class_key, (config.height, config.width), 0, len(TERRAIN_COSTS)),
    )
    noise = np.asarray(jax.random.normal(noise_key, image_shape))
    cost = TERRAIN_COSTS[classes]
    path = bellman_maximizer(-cost, connectivity=connectivity)
    items.append(
      DatasetItem(
        image=jnp.asarray(render_terrain(classes, config.pixels_per_cell, noise)),
        mask=jnp.asarray(classes, dtype=jnp.float32),
        cost=jnp.asarray(cost),
        path=jnp.asarray(path, dtype=jnp.float32),
      ),
    )
  logger.info(
    "Generated %d synthetic items on a %dx%d grid.",
    config.num_items,
    config.height,
    config.width,
  )
  return items


def train_test_split(
  items: Sequence[DatasetItem],
  train_fraction: float = 0.5,
) -> tuple[list[DatasetItem], list[DatasetItem]]:
  """Keep the first ``floor(n * train_fraction)`` items for training, the rest for testing."""
  if not 0.0 <= train_fraction <= 1.0:
    msg = f"train_fraction must be in [0, 1], got {train_fraction}."
    raise ValueError(msg)
  num_train = int(np.floor(len(items) * train_fraction))
  return list(items[:num_train]), list(items[num_train:])


def stack_items(items: Sequence[DatasetItem]) -> DatasetItem:
  """Stack items field by field along a new leading axis."""
  if not items:
    msg = "Cannot stack an empty sequence of items."
    raise ValueError(msg)
  return DatasetItem(*(jnp.stack(field) for field in zip(*items, strict=True)))


def iterate_minibatches(items: Sequence[DatasetItem], batch_size: int) -> Iterator[DatasetItem]:
  """Yield stacked minibatches in order. The last one may be smaller."""
  if batch_size < 1:
    msg = f"batch_size must be positive, got {batch_size}."
    raise ValueError(msg)
  for start in range(0, len(items), batch_size):
    yield stack_items(items[start : start + batch_size])
