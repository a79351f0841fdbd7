"""Tests for FixedAtomsProbabilityDistribution."""

from __future__ import annotations

import logging

import chex
import jax.numpy as jnp
import numpy as np
import pytest

from perturbpath.models.distribution import FixedAtomsProbabilityDistribution


@pytest.fixture
def duplicated_samples() -> jnp.ndarray:
  """Four samples over two distinct 2x2 matrices, the first one three times."""
  a = jnp.array([[1.0, 0.0], [0.0, 1.0]])
  b = jnp.array([[1.0, 1.0], [0.0, 1.0]])
  return jnp.stack([a, b, a, a])


class TestFromSamples:
  """Test construction of the empirical distribution."""

  def test_uniform_weights(self, duplicated_samples: jnp.ndarray) -> None:
    dist = FixedAtomsProbabilityDistribution.from_samples(duplicated_samples)
    assert len(dist) == 4
    chex.assert_trees_all_close(dist.weights, jnp.full((4,), 0.25))
    assert dist.check_normalized()

  def test_expectation_is_sample_mean(self, duplicated_samples: jnp.ndarray) -> None:
    dist = FixedAtomsProbabilityDistribution.from_samples(duplicated_samples)
    chex.assert_trees_all_close(dist.expectation(), duplicated_samples.mean(axis=0))

  def test_zero_samples(self) -> None:
    with pytest.raises(ValueError, match="zero samples"):
      FixedAtomsProbabilityDistribution.from_samples(jnp.zeros((0, 2, 2)))

  def test_mismatched_lengths(self) -> None:
    with pytest.raises(ValueError, match="same length"):
      FixedAtomsProbabilityDistribution(atoms=jnp.zeros((3, 2)), weights=jnp.ones((2,)) / 2)


class TestCompress:
  """Test merging of duplicate atoms."""

  def test_merges_exact_duplicates(self, duplicated_samples: jnp.ndarray) -> None:
    """Weights of duplicates accumulate on the first occurrence."""
    dist = FixedAtomsProbabilityDistribution.from_samples(duplicated_samples)
    compressed = dist.compress()

    assert len(compressed) == 2
    chex.assert_trees_all_close(compressed.atoms, duplicated_samples[:2])
    chex.assert_trees_all_close(compressed.weights, jnp.array([0.75, 0.25]))
    chex.assert_trees_all_close(compressed.expectation(), dist.expectation(), atol=1e-6)
    assert compressed.check_normalized()

  def test_is_functional(self, duplicated_samples: jnp.ndarray) -> None:
    """The input distribution is left untouched."""
    dist = FixedAtomsProbabilityDistribution.from_samples(duplicated_samples)
    dist.compress()
    assert len(dist) == 4

  def test_idempotent(self, duplicated_samples: jnp.ndarray) -> None:
    once = FixedAtomsProbabilityDistribution.from_samples(duplicated_samples).compress()
    twice = once.compress()
    chex.assert_trees_all_close(twice.atoms, once.atoms)
    chex.assert_trees_all_close(twice.weights, once.weights)

  def test_tolerance(self) -> None:
    """Atoms within atol are merged, others kept."""
    samples = jnp.array([[0.0], [1e-3], [1.0]])
    dist = FixedAtomsProbabilityDistribution.from_samples(samples)
    assert len(dist.compress(atol=0.0)) == 3
    compressed = dist.compress(atol=1e-2)
    assert len(compressed) == 2
    np.testing.assert_allclose(compressed.weights, [2.0 / 3.0, 1.0 / 3.0], rtol=1e-6)

  def test_tolerance_chain(self) -> None:
    """The last atom merges into the middle one, which then merges into the first."""
    samples = jnp.array([[0.0], [0.8], [1.6]])
    compressed = FixedAtomsProbabilityDistribution.from_samples(samples).compress(atol=1.0)
    assert len(compressed) == 1
    chex.assert_trees_all_close(compressed.atoms, jnp.array([[0.0]]))
    np.testing.assert_allclose(compressed.weights, [1.0], rtol=1e-6)

  def test_merges_into_lowest_index(self) -> None:
    """An atom close to several earlier ones feeds the first of them."""
    samples = jnp.array([[0.0], [2.0], [1.0]])
    compressed = FixedAtomsProbabilityDistribution.from_samples(samples).compress(atol=1.0)
    chex.assert_trees_all_close(compressed.atoms, jnp.array([[0.0], [2.0]]))
    np.testing.assert_allclose(compressed.weights, [2.0 / 3.0, 1.0 / 3.0], rtol=1e-6)

  def test_negative_tolerance(self, duplicated_samples: jnp.ndarray) -> None:
    dist = FixedAtomsProbabilityDistribution.from_samples(duplicated_samples)
    with pytest.raises(ValueError, match="atol"):
      dist.compress(atol=-1.0)


def test_check_normalized_warns(caplog: pytest.LogCaptureFixture) -> None:
  """Unnormalized weights are reported but not rescaled."""
  dist = FixedAtomsProbabilityDistribution(atoms=jnp.eye(2), weights=jnp.array([0.5, 0.4]))
  with caplog.at_level(logging.WARNING):
    assert not dist.check_normalized()
  assert "sum to" in caplog.text
  chex.assert_trees_all_close(dist.weights, jnp.array([0.5, 0.4]))
