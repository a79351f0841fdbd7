"""Core types used throughout the perturbpath library.

It uses jaxtyping for type annotations of JAX arrays, which provides
shape and dtype information in the type hints. Maximizers run outside of
JAX tracing, so their signatures accept NumPy arrays as well.
"""

from __future__ import annotations

from typing import Literal, Protocol

import numpy as np
from jaxtyping import Array, Float, PRNGKeyArray

CostMatrix = Float[Array | np.ndarray, "height width"]
"""Per-cell scores predicted by an embedding. Higher is better for the maximizer."""
PathMatrix = Float[Array | np.ndarray, "height width"]
"""Binary incidence matrix marking the cells visited by a path."""
BatchCostMatrix = Float[Array, "num_samples height width"]
BatchPathMatrix = Float[Array, "num_samples height width"]
NoiseBatch = Float[Array, "num_samples height width"]
"""Standard-normal perturbations, one per Monte Carlo sample."""
Image = Float[Array, "channels image_height image_width"]
ScalarLoss = Float[Array, ""]

Connectivity = Literal["rook", "queen"]
"""Neighbour pattern of a grid graph: 4 (rook) or 8 (queen) neighbours."""

LossType = Literal["imitation", "experience"]
"""Learning setting: imitate target paths or minimize a black-box path cost."""


class Maximizer(Protocol):
  """A pure function mapping a cost matrix to the incidence matrix of its best solution.

  Auxiliary instance information is passed as keyword arguments.
  """

  def __call__(self, theta: CostMatrix, **kwargs) -> PathMatrix: ...  # noqa: D102, ANN003


class PerturbedLayerFn(Protocol):
  """A differentiable Monte Carlo estimate of the perturbed maximizer."""

  def __call__(self, theta: CostMatrix, key: PRNGKeyArray) -> PathMatrix: ...  # noqa: D102
