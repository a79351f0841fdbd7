"""Gradient descent of an embedding through a perturbed combinatorial layer.

The embedding maps images to scores, the loss compares the perturbed
maximizer at those scores with the data (a target path for imitation, the
true cell costs for experience), and Adam updates the embedding weights.
"""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np
from jax.example_libraries import optimizers
from jaxtyping import PRNGKeyArray

from perturbpath.combinatorial.losses import create_fenchel_young_loss, create_pushforward_loss
from perturbpath.models.training import TrainingHistory
from perturbpath.models.types import CostMatrix, PathMatrix, ScalarLoss
from perturbpath.training.data import iterate_minibatches
from perturbpath.utils.metrics import cost_gap

if TYPE_CHECKING:
  from collections.abc import Sequence

  from jaxtyping import Array, PyTree

  from perturbpath.models.perturbed import PerturbedConfig
  from perturbpath.models.training import TrainingConfig
  from perturbpath.models.types import LossType, Maximizer
  from perturbpath.training.data import DatasetItem

logger = getLogger(__name__)

ItemLossFn = Callable[[CostMatrix, CostMatrix, PathMatrix, PRNGKeyArray], ScalarLoss]
"""Loss of one item: ``item_loss(theta, true_cost, true_path, key)``."""


def build_item_loss(
  loss_type: LossType,
  maximizer: Maximizer,
  perturbed_config: PerturbedConfig,
) -> ItemLossFn:
  """Build the per-item loss for the chosen learning setting.

  "imitation" is the Fenchel-Young loss against the item's optimal path.
  "experience" is the expected true cost of the perturbed solutions.
  """
  epsilon = perturbed_config.epsilon
  num_samples = perturbed_config.num_samples
  if loss_type == "imitation":
    fenchel_young = create_fenchel_young_loss(maximizer, epsilon, num_samples)

    def imitation_loss(
      theta: CostMatrix,
      cost: CostMatrix,
      path: PathMatrix,
      key: PRNGKeyArray,
    ) -> ScalarLoss:
      del cost
      return fenchel_young(theta, path, key)

    return imitation_loss
  if loss_type == "experience":
    pushforward = create_pushforward_loss(maximizer, epsilon, num_samples)

    def experience_loss(
      theta: CostMatrix,
      cost: CostMatrix,
      path: PathMatrix,
      key: PRNGKeyArray,
    ) -> ScalarLoss:
      del path
      return pushforward(theta, cost, key)

    return experience_loss
  msg = f"Unknown loss type {loss_type!r}."
  raise ValueError(msg)


def train_embedding(
  embedding: eqx.Module,
  train_items: Sequence[DatasetItem],
  test_items: Sequence[DatasetItem],
  item_loss: ItemLossFn,
  maximizer: Maximizer,
  config: TrainingConfig,
  key: PRNGKeyArray,
) -> tuple[eqx.Module, TrainingHistory]:
  """Train ``embedding`` with Adam on minibatch sums of ``item_loss``.

  Cost gaps on both splits are recorded once before training and after every
  epoch. Losses are summed over each split and divided by its size.

  Args:
    embedding: Equinox module mapping one image to a score matrix.
    train_items: Items used for the updates.
    test_items: Held-out items, only evaluated.
    item_loss: Per-item loss, see ``build_item_loss``.
    maximizer: Unperturbed oracle used for the cost gap.
    config: Training hyperparameters.
    key: PRNG key for the perturbations.

  Returns:
    The trained embedding and its per-epoch history.

  """
  if not train_items:
    msg = "train_items must not be empty."
    raise ValueError(msg)

  params, static = eqx.partition(embedding, eqx.is_inexact_array)
  opt_init, opt_update, get_params = optimizers.adam(config.learning_rate)

  def batch_loss(
    params: PyTree,
    images: Array,
    costs: Array,
    paths: Array,
    keys: PRNGKeyArray,
  ) -> ScalarLoss:
    model = eqx.combine(params, static)
    thetas = jax.vmap(model)(images)
    return jnp.sum(jax.vmap(item_loss)(thetas, costs, paths, keys))

  eval_loss = jax.jit(batch_loss)

  @jax.jit
  def step_fn(
    i: int,
    opt_state: optimizers.OptimizerState,
    images: Array,
    costs: Array,
    paths: Array,
    keys: PRNGKeyArray,
  ) -> tuple[ScalarLoss, optimizers.OptimizerState]:
    value, grads = jax.value_and_grad(batch_loss)(get_params(opt_state), images, costs, paths, keys)
    return value, opt_update(i, grads, opt_state)

  def gaps(params: PyTree) -> tuple[float, float]:
    model = eqx.combine(params, static)
    return cost_gap(model, train_items, maximizer), cost_gap(model, test_items, maximizer)

  train_losses = np.full((config.num_epochs,), np.nan)
  test_losses = np.full((config.num_epochs,), np.nan)
  train_gaps = np.full((config.num_epochs + 1,), np.nan)
  test_gaps = np.full((config.num_epochs + 1,), np.nan)
  train_gaps[0], test_gaps[0] = gaps(params)
  logger.info("Initial cost gap: train %.2f%%, test %.2f%%", train_gaps[0], test_gaps[0])

  opt_state = opt_init(params)
  step = 0
  for epoch in range(config.num_epochs):
    epoch_loss = 0.0
    for batch in iterate_minibatches(train_items, config.batch_size):
      key, batch_key = jax.random.split(key)
      keys = jax.random.split(batch_key, batch.image.shape[0])
      value, opt_state = step_fn(step, opt_state, batch.image, batch.cost, batch.path, keys)
      epoch_loss += float(value)
      step += 1
    train_losses[epoch] = epoch_loss / len(train_items)

    params = get_params(opt_state)
    if test_items:
      test_loss = 0.0
      for batch in iterate_minibatches(test_items, config.batch_size):
        key, batch_key = jax.random.split(key)
        keys = jax.random.split(batch_key, batch.image.shape[0])
        test_loss += float(eval_loss(params, batch.image, batch.cost, batch.path, keys))
      test_losses[epoch] = test_loss / len(test_items)

    train_gaps[epoch + 1], test_gaps[epoch + 1] = gaps(params)
    logger.info(
      "Epoch %d/%d: train loss %.4f, test loss %.4f, train gap %.2f%%, test gap %.2f%%",
      epoch + 1,
      config.num_epochs,
      train_losses[epoch],
      test_losses[epoch],
      train_gaps[epoch + 1],
      test_gaps[epoch + 1],
    )

  history = TrainingHistory(
    train_losses=jnp.asarray(train_losses),
    test_losses=jnp.asarray(test_losses),
    train_gaps=jnp.asarray(train_gaps),
    test_gaps=jnp.asarray(test_gaps),
  )
  return eqx.combine(get_params(opt_state), static), history
