"""Losses built on the perturbed maximizer, with closed-form custom gradients."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import jax
import jax.numpy as jnp
from jaxtyping import PRNGKeyArray, PyTree

from perturbpath.combinatorial.perturbed import (
  as_float_array,
  check_perturbation_parameters,
  draw_perturbations,
  perturbed_samples,
)
from perturbpath.models.types import CostMatrix, PathMatrix, ScalarLoss
from perturbpath.utils.metrics import path_cost

if TYPE_CHECKING:
  from jaxtyping import Array

  from perturbpath.models.types import Maximizer, NoiseBatch

FenchelYoungLossFn = Callable[[CostMatrix, PathMatrix, PRNGKeyArray], ScalarLoss]
PushforwardLossFn = Callable[[CostMatrix, PyTree, PRNGKeyArray], ScalarLoss]
CostFn = Callable[[PathMatrix, PyTree], ScalarLoss]


def create_fenchel_young_loss(
  maximizer: Maximizer,
  epsilon: float,
  num_samples: int,
) -> FenchelYoungLossFn:
  """Create the Fenchel-Young loss of the additive perturbed maximizer (learning by imitation).

  The value is ``F(theta) - <theta, y_true>`` where ``F`` is the Monte Carlo
  estimate ``mean_i max_y <theta + epsilon * Z_i, y>``; the regularizer
  ``Omega(y_true)`` is not evaluated. The gradient with respect to ``theta``
  is ``y_hat(theta) - y_true``, registered as a custom VJP, so the oracle is
  never differentiated.

  The loss is convex in ``theta`` and non-negative up to Monte Carlo noise of
  order ``epsilon``. Smaller ``epsilon`` gives a sharper, less smooth loss.

  Args:
    maximizer: Maximizer with its instance context already bound.
    epsilon: Perturbation scale, >= 0.
    num_samples: Number of Monte Carlo samples M, >= 1.

  Returns:
    A function ``loss(theta, y_true, key) -> scalar``.

  """
  check_perturbation_parameters(epsilon, num_samples)

  def _value_and_prediction(
    theta: Array,
    y_true: Array,
    noise: NoiseBatch,
  ) -> tuple[ScalarLoss, PathMatrix]:
    thetas, ys = perturbed_samples(maximizer, theta, noise, epsilon)
    sample_axes = tuple(range(1, ys.ndim))
    f_value = jnp.mean(jnp.sum(thetas * ys, axis=sample_axes))
    return f_value - jnp.vdot(theta, y_true), jnp.mean(ys, axis=0)

  @jax.custom_vjp
  def _loss(theta: Array, y_true: Array, noise: NoiseBatch) -> ScalarLoss:
    value, _ = _value_and_prediction(theta, y_true, noise)
    return value

  def _loss_fwd(
    theta: Array,
    y_true: Array,
    noise: NoiseBatch,
  ) -> tuple[ScalarLoss, tuple[Array, Array, Array, Array]]:
    value, y_hat = _value_and_prediction(theta, y_true, noise)
    return value, (y_hat, theta, y_true, noise)

  def _loss_bwd(
    residuals: tuple[Array, Array, Array, Array],
    g: Array,
  ) -> tuple[Array, Array, Array]:
    y_hat, theta, y_true, noise = residuals
    return g * (y_hat - y_true), -g * theta, jnp.zeros_like(noise)

  _loss.defvjp(_loss_fwd, _loss_bwd)

  def loss(theta: CostMatrix, y_true: PathMatrix, key: PRNGKeyArray) -> ScalarLoss:
    """Fenchel-Young loss of ``theta`` against the target solution ``y_true``."""
    theta = as_float_array(theta)
    y_true = jnp.asarray(y_true, dtype=theta.dtype)
    if theta.shape != y_true.shape:
      msg = f"theta and y_true must have the same shape, got {theta.shape} and {y_true.shape}."
      raise ValueError(msg)
    noise = draw_perturbations(key, theta.shape, num_samples).astype(theta.dtype)
    return _loss(theta, y_true, noise)

  return loss


def create_pushforward_loss(
  maximizer: Maximizer,
  epsilon: float,
  num_samples: int,
  cost_fn: CostFn = path_cost,
) -> PushforwardLossFn:
  """Create the expected black-box cost of perturbed solutions (learning by experience).

  The value is ``mean_i cost_fn(Y_i, cost_context)`` with
  ``Y_i = maximizer(theta + epsilon * Z_i)``. ``cost_fn`` is only evaluated,
  never differentiated: the gradient is the score-function estimate
  ``1 / (epsilon * M) * sum_i cost_i Z_i``.

  Args:
    maximizer: Maximizer with its instance context already bound.
    epsilon: Perturbation scale, > 0.
    num_samples: Number of Monte Carlo samples M, >= 1.
    cost_fn: JAX-traceable ``cost_fn(y, cost_context) -> scalar``. Defaults to
      the true path cost ``<y, c_true>``.

  Returns:
    A function ``loss(theta, cost_context, key) -> scalar``.

  """
  check_perturbation_parameters(epsilon, num_samples)
  if epsilon == 0:
    msg = "The pushforward loss needs epsilon > 0: its gradient is zero otherwise."
    raise ValueError(msg)

  def _costs(theta: Array, cost_context: PyTree, noise: NoiseBatch) -> Array:
    _, ys = perturbed_samples(maximizer, theta, noise, epsilon)
    return jax.vmap(cost_fn, in_axes=(0, None))(ys, cost_context)

  @jax.custom_vjp
  def _loss(theta: Array, cost_context: PyTree, noise: NoiseBatch) -> ScalarLoss:
    return jnp.mean(_costs(theta, cost_context, noise))

  def _loss_fwd(
    theta: Array,
    cost_context: PyTree,
    noise: NoiseBatch,
  ) -> tuple[ScalarLoss, tuple[Array, PyTree, Array]]:
    costs = _costs(theta, cost_context, noise)
    return jnp.mean(costs), (costs, cost_context, noise)

  def _loss_bwd(residuals: tuple[Array, PyTree, Array], g: Array) -> tuple[Array, PyTree, Array]:
    costs, cost_context, noise = residuals
    grad_theta = g * jnp.tensordot(costs, noise, axes=1) / (epsilon * num_samples)
    zero_context = jax.tree_util.tree_map(jnp.zeros_like, cost_context)
    return grad_theta.astype(noise.dtype), zero_context, jnp.zeros_like(noise)

  _loss.defvjp(_loss_fwd, _loss_bwd)

  def loss(theta: CostMatrix, cost_context: PyTree, key: PRNGKeyArray) -> ScalarLoss:
    """Expected cost of the perturbed solutions at ``theta``."""
    theta = as_float_array(theta)
    cost_context = jax.tree_util.tree_map(as_float_array, cost_context)
    noise = draw_perturbations(key, theta.shape, num_samples).astype(theta.dtype)
    return _loss(theta, cost_context, noise)

  return loss
