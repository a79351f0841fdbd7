"""Common fixtures and utilities for testing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import jax
import numpy as np
import pytest

from perturbpath.models import DatasetConfig

if TYPE_CHECKING:
  from jaxtyping import PRNGKeyArray


@pytest.fixture
def rng_key() -> PRNGKeyArray:
  """Provide a consistent PRNG key for testing."""
  return jax.random.PRNGKey(42)


@pytest.fixture
def uniform_costs() -> np.ndarray:
  """3x3 grid where every cell costs 1."""
  return np.ones((3, 3))


@pytest.fixture
def corridor_costs() -> np.ndarray:
  """3x3 grid whose unique cheapest rook path runs along the top row then the right column."""
  return np.array(
    [
      [1.0, 1.0, 1.0],
      [9.0, 9.0, 1.0],
      [9.0, 9.0, 1.0],
    ],
  )


@pytest.fixture
def random_costs() -> np.ndarray:
  """5x5 grid of positive costs drawn from a fixed seed."""
  return np.random.default_rng(0).uniform(0.5, 5.0, size=(5, 5))


@pytest.fixture
def walled_costs() -> np.ndarray:
  """3x3 grid whose middle column cannot be entered."""
  costs = np.ones((3, 3))
  costs[:, 1] = np.inf
  return costs


@pytest.fixture
def small_dataset_config() -> DatasetConfig:
  """A dataset small enough to train on in a unit test."""
  return DatasetConfig(num_items=6, height=4, width=4, pixels_per_cell=2, train_fraction=0.5)
