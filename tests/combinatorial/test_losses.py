"""Tests for the Fenchel-Young and pushforward losses."""

from __future__ import annotations

from functools import partial

import chex
import jax
import jax.numpy as jnp
import numpy as np
import pytest

from perturbpath.combinatorial.losses import create_fenchel_young_loss, create_pushforward_loss
from perturbpath.combinatorial.maximizers import bellman_maximizer
from perturbpath.combinatorial.perturbed import create_perturbed_layer, draw_perturbations

rook_maximizer = partial(bellman_maximizer, connectivity="rook")


@pytest.fixture
def theta(random_costs: np.ndarray) -> jnp.ndarray:
  """Scores of the 5x5 random grid."""
  return -jnp.asarray(random_costs, dtype=jnp.float32)


@pytest.fixture
def y_true(random_costs: np.ndarray) -> jnp.ndarray:
  """Snake path sweeping every row of the 5x5 grid: feasible, never optimal for positive costs."""
  return jnp.ones(random_costs.shape, dtype=jnp.float32)


class TestFenchelYoungLoss:
  """Test value and gradient of the Fenchel-Young loss."""

  def test_lower_bound(self, theta: jnp.ndarray, y_true: jnp.ndarray, rng_key) -> None:
    """Each perturbed optimum beats y_true, so loss >= epsilon * mean_i <Z_i, y_true>."""
    epsilon, num_samples = 0.1, 16
    loss_fn = create_fenchel_young_loss(rook_maximizer, epsilon, num_samples)
    loss = loss_fn(theta, y_true, rng_key)

    noise = draw_perturbations(rng_key, theta.shape, num_samples)
    bound = epsilon * jnp.mean(jnp.sum(noise * y_true, axis=(1, 2)))
    assert loss >= bound - 1e-5

  def test_zero_at_optimum_without_noise(self, theta: jnp.ndarray, rng_key) -> None:
    loss_fn = create_fenchel_young_loss(rook_maximizer, epsilon=0.0, num_samples=1)
    y_opt = jnp.asarray(rook_maximizer(np.asarray(theta)))
    np.testing.assert_allclose(loss_fn(theta, y_opt, rng_key), 0.0, atol=1e-5)

  def test_positive_away_from_optimum(
    self,
    theta: jnp.ndarray,
    y_true: jnp.ndarray,
    rng_key,
  ) -> None:
    loss_fn = create_fenchel_young_loss(rook_maximizer, epsilon=0.0, num_samples=1)
    assert loss_fn(theta, y_true, rng_key) > 0

  def test_gradient_is_prediction_minus_target(
    self,
    theta: jnp.ndarray,
    y_true: jnp.ndarray,
    rng_key,
  ) -> None:
    """Gradient in theta is y_hat - y_true with the same draws, and -theta in y_true."""
    epsilon, num_samples = 0.5, 8
    loss_fn = create_fenchel_young_loss(rook_maximizer, epsilon, num_samples)
    layer = create_perturbed_layer(rook_maximizer, epsilon, num_samples)

    grad_theta, grad_y = jax.grad(loss_fn, argnums=(0, 1))(theta, y_true, rng_key)

    chex.assert_trees_all_close(grad_theta, layer(theta, rng_key) - y_true, atol=1e-6)
    chex.assert_trees_all_close(grad_y, -theta)

  def test_zero_gradient_at_target(self, theta: jnp.ndarray, rng_key) -> None:
    """No update is needed when the prediction already equals the target."""
    loss_fn = create_fenchel_young_loss(rook_maximizer, epsilon=0.0, num_samples=1)
    y_opt = jnp.asarray(rook_maximizer(np.asarray(theta)))
    chex.assert_trees_all_close(jax.grad(loss_fn)(theta, y_opt, rng_key), jnp.zeros_like(theta))

  def test_jit(self, theta: jnp.ndarray, y_true: jnp.ndarray, rng_key) -> None:
    loss_fn = create_fenchel_young_loss(rook_maximizer, epsilon=0.5, num_samples=4)
    value, grad = jax.jit(jax.value_and_grad(loss_fn))(theta, y_true, rng_key)
    np.testing.assert_allclose(value, loss_fn(theta, y_true, rng_key), rtol=1e-5)
    chex.assert_shape(grad, theta.shape)

  def test_shape_mismatch(self, theta: jnp.ndarray, rng_key) -> None:
    loss_fn = create_fenchel_young_loss(rook_maximizer, epsilon=0.1, num_samples=2)
    with pytest.raises(ValueError, match="same shape"):
      loss_fn(theta, jnp.zeros((3, 3)), rng_key)


class TestPushforwardLoss:
  """Test the expected cost of perturbed solutions."""

  def test_value_is_mean_cost(self, theta: jnp.ndarray, random_costs: np.ndarray, rng_key) -> None:
    epsilon, num_samples = 0.5, 6
    loss_fn = create_pushforward_loss(rook_maximizer, epsilon, num_samples)
    costs = jnp.asarray(random_costs, dtype=jnp.float32)

    noise = draw_perturbations(rng_key, theta.shape, num_samples)
    ys = np.stack([rook_maximizer(np.asarray(theta + epsilon * z)) for z in noise])
    expected = np.mean(np.sum(ys * np.asarray(costs), axis=(1, 2)))
    np.testing.assert_allclose(loss_fn(theta, costs, rng_key), expected, rtol=1e-5)

  def test_gradient_matches_formula(
    self,
    theta: jnp.ndarray,
    random_costs: np.ndarray,
    rng_key,
  ) -> None:
    """d theta = 1 / (epsilon * M) * sum_i cost_i Z_i; the cost context gets no gradient."""
    epsilon, num_samples = 0.5, 6
    loss_fn = create_pushforward_loss(rook_maximizer, epsilon, num_samples)
    costs = jnp.asarray(random_costs, dtype=jnp.float32)

    grad_theta, grad_costs = jax.grad(loss_fn, argnums=(0, 1))(theta, costs, rng_key)

    noise = np.asarray(draw_perturbations(rng_key, theta.shape, num_samples))
    ys = np.stack([rook_maximizer(np.asarray(theta) + epsilon * z) for z in noise])
    sample_costs = np.sum(ys * np.asarray(costs), axis=(1, 2))
    expected = np.tensordot(sample_costs, noise, axes=1) / (epsilon * num_samples)
    np.testing.assert_allclose(grad_theta, expected, rtol=1e-4, atol=1e-4)
    chex.assert_trees_all_close(grad_costs, jnp.zeros_like(costs))

  def test_custom_cost_fn(self, theta: jnp.ndarray, rng_key) -> None:
    """Any traceable cost works. The source cell is on every path."""
    loss_fn = create_pushforward_loss(
      rook_maximizer,
      epsilon=0.5,
      num_samples=4,
      cost_fn=lambda y, scale: scale * jnp.sum(y[0, 0]),
    )
    np.testing.assert_allclose(loss_fn(theta, jnp.asarray(3.0), rng_key), 3.0, rtol=1e-6)

  def test_jit(self, theta: jnp.ndarray, random_costs: np.ndarray, rng_key) -> None:
    loss_fn = create_pushforward_loss(rook_maximizer, epsilon=0.5, num_samples=4)
    grad = jax.jit(jax.grad(loss_fn))(theta, jnp.asarray(random_costs), rng_key)
    chex.assert_shape(grad, theta.shape)
    chex.assert_tree_all_finite(grad)

  def test_zero_epsilon_rejected(self) -> None:
    with pytest.raises(ValueError, match="epsilon > 0"):
      create_pushforward_loss(rook_maximizer, epsilon=0.0, num_samples=4)
