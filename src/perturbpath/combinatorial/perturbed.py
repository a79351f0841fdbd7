"""Perturbed maximizers: differentiable Monte Carlo smoothing of a combinatorial oracle.

Given scores ``theta``, draw ``Z_1..Z_M`` standard-normal, solve each
``theta + epsilon * Z_i`` with the (non-differentiable) maximizer and average
the solutions. The average lies in the convex hull of feasible solutions and
its distribution over ``Y_i`` depends smoothly on ``theta``.

The maximizer is a plain Python function. It is called on the host through
``jax.pure_callback`` so that the layers below can be jitted, vmapped and
differentiated without JAX ever tracing the oracle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
import numpy as np

from perturbpath.combinatorial.maximizers import get_maximizer
from perturbpath.models.distribution import FixedAtomsProbabilityDistribution

if TYPE_CHECKING:
  from jaxtyping import Array, PRNGKeyArray

  from perturbpath.models.perturbed import PerturbedConfig
  from perturbpath.models.types import (
    BatchCostMatrix,
    BatchPathMatrix,
    CostMatrix,
    Maximizer,
    NoiseBatch,
    PathMatrix,
    PerturbedLayerFn,
  )


def check_perturbation_parameters(epsilon: float, num_samples: int) -> None:
  """Fail fast on invalid perturbation hyperparameters.

  Raises:
    ValueError: If ``epsilon`` is negative or ``num_samples`` is smaller than 1.

  """
  if epsilon < 0:
    msg = f"epsilon must be non-negative, got {epsilon}."
    raise ValueError(msg)
  if num_samples < 1:
    msg = f"num_samples must be >= 1, got {num_samples}."
    raise ValueError(msg)


def as_float_array(theta: CostMatrix) -> Array:
  """Convert ``theta`` to a floating point JAX array."""
  theta = jnp.asarray(theta)
  if not jnp.issubdtype(theta.dtype, jnp.floating):
    theta = theta.astype(jnp.float32)
  return theta


def draw_perturbations(key: PRNGKeyArray, shape: tuple[int, ...], num_samples: int) -> NoiseBatch:
  """Draw ``num_samples`` independent standard-normal arrays of the given shape."""
  return jax.random.normal(key, (num_samples, *shape))


def solve_batch(maximizer: Maximizer, thetas: BatchCostMatrix) -> BatchPathMatrix:
  """Call ``maximizer`` on each ``thetas[i]``, in index order, on the host.

  Args:
    maximizer: Pure function returning an array with the shape of its input.
    thetas: Stacked inputs, shape (num_samples, ...).

  Returns:
    Stacked solutions with the shape and dtype of ``thetas``.

  """
  result_shape = jax.ShapeDtypeStruct(thetas.shape, thetas.dtype)

  def _host_solve(batch: np.ndarray) -> np.ndarray:
    batch = np.asarray(batch)
    solutions = np.zeros(batch.shape, dtype=batch.dtype)
    for i in range(batch.shape[0]):
      solutions[i] = maximizer(batch[i])
    return solutions

  return jax.pure_callback(_host_solve, result_shape, thetas, vmap_method="sequential")


def perturbed_samples(
  maximizer: Maximizer,
  theta: CostMatrix,
  noise: NoiseBatch,
  epsilon: float,
) -> tuple[BatchCostMatrix, BatchPathMatrix]:
  """Solve every perturbed copy ``theta + epsilon * noise[i]``.

  Returns:
    The perturbed scores and the corresponding maximizer outputs.

  """
  thetas = theta[None] + epsilon * noise.astype(theta.dtype)
  return thetas, solve_batch(maximizer, thetas)


def create_perturbed_layer(
  maximizer: Maximizer,
  epsilon: float,
  num_samples: int,
) -> PerturbedLayerFn:
  """Create the additive perturbed layer ``theta -> mean_i maximizer(theta + epsilon * Z_i)``.

  The backward pass uses the same draws as the forward pass and the
  Gaussian score-function identity::

      d theta = 1 / (epsilon * M) * sum_i <g, Y_i> Z_i

  so the oracle itself is never differentiated. With ``epsilon = 0`` the
  layer is the raw maximizer and its gradient is zero.

  Args:
    maximizer: Maximizer with its instance context already bound.
    epsilon: Perturbation scale, >= 0.
    num_samples: Number of Monte Carlo samples M, >= 1.

  Returns:
    A function ``layer(theta, key) -> y_hat``.

  """
  check_perturbation_parameters(epsilon, num_samples)

  @jax.custom_vjp
  def _layer(theta: Array, noise: NoiseBatch) -> PathMatrix:
    _, ys = perturbed_samples(maximizer, theta, noise, epsilon)
    return jnp.mean(ys, axis=0)

  def _layer_fwd(theta: Array, noise: NoiseBatch) -> tuple[PathMatrix, tuple[Array, Array]]:
    _, ys = perturbed_samples(maximizer, theta, noise, epsilon)
    return jnp.mean(ys, axis=0), (ys, noise)

  def _layer_bwd(residuals: tuple[Array, Array], g: Array) -> tuple[Array, Array]:
    ys, noise = residuals
    if epsilon == 0:
      grad_theta = jnp.zeros(ys.shape[1:], dtype=ys.dtype)
    else:
      scores = jnp.sum(ys * g, axis=tuple(range(1, ys.ndim)))
      grad_theta = jnp.tensordot(scores, noise, axes=1) / (epsilon * num_samples)
    return grad_theta.astype(ys.dtype), jnp.zeros_like(noise)

  _layer.defvjp(_layer_fwd, _layer_bwd)

  def layer(theta: CostMatrix, key: PRNGKeyArray) -> PathMatrix:
    """Monte Carlo estimate of the perturbed maximizer at ``theta``."""
    theta = as_float_array(theta)
    noise = draw_perturbations(key, theta.shape, num_samples)
    return _layer(theta, noise.astype(theta.dtype))

  return layer


def perturbed_layer_from_config(config: PerturbedConfig) -> PerturbedLayerFn:
  """Build the perturbed layer of the configured registered maximizer."""
  return create_perturbed_layer(get_maximizer(config), config.epsilon, config.num_samples)


def compute_probability_distribution(
  maximizer: Maximizer,
  theta: CostMatrix,
  key: PRNGKeyArray,
  epsilon: float,
  num_samples: int,
) -> FixedAtomsProbabilityDistribution:
  """Empirical distribution of the perturbed maximizer outputs.

  Uses the same draws as ``create_perturbed_layer`` for the same key, so the
  expectation of the result equals the layer output. Atoms are not
  compressed: each sample keeps weight ``1 / num_samples``.
  """
  check_perturbation_parameters(epsilon, num_samples)
  theta = as_float_array(theta)
  noise = draw_perturbations(key, theta.shape, num_samples).astype(theta.dtype)
  _, ys = perturbed_samples(maximizer, theta, noise, epsilon)
  return FixedAtomsProbabilityDistribution.from_samples(ys)
