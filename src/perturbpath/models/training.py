"""Configuration and result structures for training an embedding."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import jax.numpy as jnp
from flax import struct

from perturbpath.models.perturbed import PerturbedConfig

if TYPE_CHECKING:
  from jaxtyping import Array, Float

  from perturbpath.models.types import LossType

logger = getLogger(__name__)

LOSS_TYPES = ("imitation", "experience")


@dataclass(frozen=True)
class DatasetConfig:
  """Configuration of the synthetic terrain dataset.

  Attributes:
      num_items: Number of (image, mask, cost, path) items.
      height: Number of grid rows.
      width: Number of grid columns.
      pixels_per_cell: Side length, in pixels, of the image patch of a cell.
      train_fraction: Share of items used for training.
      prng_seed: Seed of the key used to generate the dataset.

  """

  num_items: int = 100
  height: int = 12
  width: int = 12
  pixels_per_cell: int = 4
  train_fraction: float = 0.8
  prng_seed: int = 0

  def __post_init__(self) -> None:
    """Validate the dataset configuration."""
    for name in ("num_items", "height", "width", "pixels_per_cell", "prng_seed"):
      value = getattr(self, name)
      if isinstance(value, bool) or not isinstance(value, int):
        msg = f"Expected {name} to be an integer, got {type(value)}"
        raise TypeError(msg)
    for name in ("num_items", "height", "width", "pixels_per_cell"):
      if getattr(self, name) < 1:
        msg = f"{name} must be positive."
        raise ValueError(msg)
    if not 0.0 < self.train_fraction < 1.0:
      msg = f"train_fraction must be in (0, 1), got {self.train_fraction}."
      raise ValueError(msg)


@dataclass(frozen=True)
class TrainingConfig:
  """Hyperparameters of the gradient descent loop.

  Attributes:
      num_epochs: Number of passes over the training set.
      batch_size: Number of items whose losses are summed per update.
      learning_rate: Adam step size.
      loss_type: "imitation" (Fenchel-Young against target paths) or
          "experience" (expected true cost of perturbed solutions).
      prng_seed: Seed of the key threaded through initialisation and sampling.

  """

  num_epochs: int = 10
  batch_size: int = 5
  learning_rate: float = 1e-3
  loss_type: LossType = "imitation"
  prng_seed: int = 42

  def __post_init__(self) -> None:
    """Validate the training configuration."""
    if self.num_epochs < 1:
      msg = "num_epochs must be positive."
      raise ValueError(msg)
    if self.batch_size < 1:
      msg = "batch_size must be positive."
      raise ValueError(msg)
    if self.learning_rate <= 0:
      msg = "learning_rate must be positive."
      raise ValueError(msg)
    if self.loss_type not in LOSS_TYPES:
      msg = f"loss_type must be one of {LOSS_TYPES}, got {self.loss_type!r}."
      raise ValueError(msg)


@dataclass(frozen=True)
class ExperimentConfig:
  """Top-level configuration composing dataset, layer and training settings."""

  dataset: DatasetConfig = field(default_factory=DatasetConfig)
  perturbed: PerturbedConfig = field(default_factory=PerturbedConfig)
  training: TrainingConfig = field(default_factory=TrainingConfig)

  def __post_init__(self) -> None:
    """Cross-field validation."""
    if not isinstance(self.dataset, DatasetConfig):
      msg = "dataset must be a DatasetConfig instance."
      raise TypeError(msg)
    if not isinstance(self.perturbed, PerturbedConfig):
      msg = "perturbed must be a PerturbedConfig instance."
      raise TypeError(msg)
    if not isinstance(self.training, TrainingConfig):
      msg = "training must be a TrainingConfig instance."
      raise TypeError(msg)
    if self.training.loss_type == "experience" and self.perturbed.epsilon == 0:
      msg = "Learning by experience needs epsilon > 0 to get a non-zero gradient."
      raise ValueError(msg)
    if self.perturbed.maximizer == "dijkstra" and self.perturbed.epsilon > 0:
      logger.warning(
        "Dijkstra maximizer with epsilon=%s: perturbed costs can turn negative and be rejected.",
        self.perturbed.epsilon,
      )
    num_train = int(self.dataset.num_items * self.dataset.train_fraction)
    if num_train < 1 or num_train == self.dataset.num_items:
      msg = (
        f"train_fraction={self.dataset.train_fraction} leaves an empty train or test split "
        f"for {self.dataset.num_items} items."
      )
      raise ValueError(msg)


@struct.dataclass
class TrainingHistory:
  """Per-epoch metrics recorded by the training loop.

  Attributes:
      train_losses: (num_epochs,) mean loss per training item.
      test_losses: (num_epochs,) mean loss per test item.
      train_gaps: (num_epochs + 1,) cost gap in percent, before training first.
      test_gaps: (num_epochs + 1,) cost gap in percent, before training first.

  """

  train_losses: Float[Array, "num_epochs"]
  test_losses: Float[Array, "num_epochs"]
  train_gaps: Float[Array, "num_epochs_plus_one"]
  test_gaps: Float[Array, "num_epochs_plus_one"]

  @classmethod
  def empty(cls, num_epochs: int) -> TrainingHistory:
    """Allocate a history filled with NaN."""
    return cls(
      train_losses=jnp.full((num_epochs,), jnp.nan),
      test_losses=jnp.full((num_epochs,), jnp.nan),
      train_gaps=jnp.full((num_epochs + 1,), jnp.nan),
      test_gaps=jnp.full((num_epochs + 1,), jnp.nan),
    )
