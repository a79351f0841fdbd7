"""Tests for the perturbed maximizer layer."""

from __future__ import annotations

from functools import partial

import chex
import jax
import jax.numpy as jnp
import numpy as np
import pytest

from perturbpath.combinatorial.maximizers import bellman_maximizer
from perturbpath.combinatorial.perturbed import (
  check_perturbation_parameters,
  compute_probability_distribution,
  create_perturbed_layer,
  draw_perturbations,
  perturbed_layer_from_config,
  solve_batch,
)
from perturbpath.models import PerturbedConfig

rook_maximizer = partial(bellman_maximizer, connectivity="rook")


@pytest.fixture
def theta(random_costs: np.ndarray) -> jnp.ndarray:
  """Scores of the 5x5 random grid."""
  return -jnp.asarray(random_costs, dtype=jnp.float32)


class TestForward:
  """Test the Monte Carlo forward pass."""

  def test_zero_epsilon_is_maximizer(self, theta: jnp.ndarray, rng_key) -> None:
    layer = create_perturbed_layer(rook_maximizer, epsilon=0.0, num_samples=3)
    chex.assert_trees_all_close(layer(theta, rng_key), rook_maximizer(np.asarray(theta)))

  def test_output_in_hull(self, theta: jnp.ndarray, rng_key) -> None:
    """The average of paths lies in [0, 1] and always covers both endpoints."""
    layer = create_perturbed_layer(rook_maximizer, epsilon=1.0, num_samples=16)
    y_hat = layer(theta, rng_key)

    chex.assert_shape(y_hat, theta.shape)
    assert (y_hat >= 0).all()
    assert (y_hat <= 1).all()
    assert y_hat[0, 0] == 1.0
    assert y_hat[-1, -1] == 1.0

  def test_same_key_same_output(self, theta: jnp.ndarray, rng_key) -> None:
    layer = create_perturbed_layer(rook_maximizer, epsilon=1.0, num_samples=8)
    chex.assert_trees_all_equal(layer(theta, rng_key), layer(theta, rng_key))

  def test_jit_and_vmap(self, theta: jnp.ndarray, rng_key) -> None:
    """The host oracle does not prevent jit or vmap."""
    layer = create_perturbed_layer(rook_maximizer, epsilon=0.5, num_samples=4)
    chex.assert_trees_all_close(jax.jit(layer)(theta, rng_key), layer(theta, rng_key))

    thetas = jnp.stack([theta, 2.0 * theta])
    keys = jax.random.split(rng_key, 2)
    batched = jax.vmap(layer)(thetas, keys)
    chex.assert_shape(batched, (2, *theta.shape))
    chex.assert_trees_all_close(batched[1], layer(thetas[1], keys[1]))

  def test_solve_batch_in_order(self, theta: jnp.ndarray) -> None:
    thetas = jnp.stack([theta, jnp.flip(theta)])
    ys = solve_batch(rook_maximizer, thetas)
    chex.assert_trees_all_close(ys[0], rook_maximizer(np.asarray(thetas[0])))
    chex.assert_trees_all_close(ys[1], rook_maximizer(np.asarray(thetas[1])))

  def test_from_config(self, theta: jnp.ndarray, rng_key) -> None:
    config = PerturbedConfig(epsilon=0.0, num_samples=2, connectivity="rook")
    layer = perturbed_layer_from_config(config)
    chex.assert_trees_all_close(layer(theta, rng_key), rook_maximizer(np.asarray(theta)))


class TestGradient:
  """Test the score-function gradient."""

  def test_matches_formula(self, theta: jnp.ndarray, rng_key) -> None:
    """d theta = 1 / (epsilon * M) * sum_i <g, Y_i> Z_i, with the forward draws."""
    epsilon, num_samples = 0.5, 8
    layer = create_perturbed_layer(rook_maximizer, epsilon, num_samples)
    g = jax.random.normal(jax.random.PRNGKey(7), theta.shape)

    grad = jax.grad(lambda t: jnp.vdot(layer(t, rng_key), g))(theta)

    noise = draw_perturbations(rng_key, theta.shape, num_samples)
    ys = np.stack([rook_maximizer(np.asarray(theta + epsilon * z)) for z in noise])
    scores = np.sum(ys * np.asarray(g), axis=(1, 2))
    expected = np.tensordot(scores, np.asarray(noise), axes=1) / (epsilon * num_samples)
    np.testing.assert_allclose(grad, expected, rtol=1e-4, atol=1e-5)

  def test_zero_epsilon_zero_gradient(self, theta: jnp.ndarray, rng_key) -> None:
    layer = create_perturbed_layer(rook_maximizer, epsilon=0.0, num_samples=2)
    grad = jax.grad(lambda t: jnp.sum(layer(t, rng_key)))(theta)
    chex.assert_trees_all_close(grad, jnp.zeros_like(theta))

  def test_gradient_is_finite(self, theta: jnp.ndarray, rng_key) -> None:
    layer = create_perturbed_layer(rook_maximizer, epsilon=0.1, num_samples=4)
    grad = jax.jit(jax.grad(lambda t, k: jnp.sum(layer(t, k) ** 2)))(theta, rng_key)
    chex.assert_tree_all_finite(grad)


class TestProbabilityDistribution:
  """Test the empirical distribution of perturbed solutions."""

  def test_expectation_matches_layer(self, theta: jnp.ndarray, rng_key) -> None:
    layer = create_perturbed_layer(rook_maximizer, epsilon=1.0, num_samples=10)
    dist = compute_probability_distribution(rook_maximizer, theta, rng_key, 1.0, 10)

    assert len(dist) == 10
    chex.assert_trees_all_close(dist.expectation(), layer(theta, rng_key), atol=1e-6)
    compressed = dist.compress()
    chex.assert_trees_all_close(compressed.expectation(), dist.expectation(), atol=1e-6)

  def test_collapse_at_small_epsilon(self, corridor_costs: np.ndarray, rng_key) -> None:
    """A unique optimum absorbs every sample when the noise is tiny."""
    theta = -jnp.asarray(corridor_costs, dtype=jnp.float32)
    dist = compute_probability_distribution(rook_maximizer, theta, rng_key, 1e-3, 20).compress()

    assert len(dist) == 1
    np.testing.assert_allclose(dist.weights, [1.0], rtol=1e-6)
    chex.assert_trees_all_close(dist.atoms[0], rook_maximizer(np.asarray(theta)))


@pytest.mark.parametrize(
  ("epsilon", "num_samples", "match"),
  [(-0.1, 1, "epsilon"), (0.1, 0, "num_samples")],
)
def test_invalid_parameters(epsilon: float, num_samples: int, match: str) -> None:
  with pytest.raises(ValueError, match=match):
    check_perturbation_parameters(epsilon, num_samples)
  with pytest.raises(ValueError, match=match):
    create_perturbed_layer(rook_maximizer, epsilon, num_samples)
