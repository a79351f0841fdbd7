"""Finite-support probability distribution over maximizer outputs."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import jax.numpy as jnp
import numpy as np
from flax import struct

if TYPE_CHECKING:
  from jaxtyping import Array, Float

logger = getLogger(__name__)


@struct.dataclass
class FixedAtomsProbabilityDistribution:
  """Weighted atoms, typically the empirical law of perturbed oracle calls.

  Immutable, compatible with JAX transformations. Operations that change
  the support (``compress``) return a new instance.

  Attributes:
      atoms: (n, ...) stacked support points, e.g. path incidence matrices.
      weights: (n,) non-negative weights summing to 1.

  """

  atoms: Float[Array, "n ..."]
  weights: Float[Array, "n"]

  def __post_init__(self) -> None:
    """Check that atoms and weights are parallel sequences."""
    atoms_shape = getattr(self.atoms, "shape", None)
    weights_shape = getattr(self.weights, "shape", None)
    # Leaves can be placeholders while JAX rebuilds the pytree.
    if not atoms_shape or not weights_shape:
      return
    if atoms_shape[0] != weights_shape[0]:
      msg = (
        f"atoms and weights must have the same length, got {atoms_shape[0]} "
        f"atoms and {weights_shape[0]} weights."
      )
      raise ValueError(msg)

  def __len__(self) -> int:
    """Return the number of atoms."""
    return int(self.weights.shape[0])

  @classmethod
  def from_samples(cls, samples: Float[Array, "n ..."]) -> FixedAtomsProbabilityDistribution:
    """Build the empirical distribution of ``samples``, each with weight ``1/n``."""
    num_samples = samples.shape[0]
    if num_samples == 0:
      msg = "Cannot build a distribution from zero samples."
      raise ValueError(msg)
    weights = jnp.full((num_samples,), 1.0 / num_samples, dtype=samples.dtype)
    return cls(atoms=jnp.asarray(samples), weights=weights)

  def expectation(self) -> Float[Array, "..."]:
    """Return the weighted average of the atoms."""
    return jnp.tensordot(self.weights, self.atoms, axes=1)

  def compress(self, atol: float = 0.0) -> FixedAtomsProbabilityDistribution:
    """Merge approximately equal atoms.

    Atoms are scanned from the last to the second. Atom ``i`` adds its
    (possibly already merged) weight to the first atom ``j < i`` within
    ``atol`` (absolute tolerance only) and is dropped. Merges chain: with a
    large enough tolerance ``c`` merges into ``b``, then ``b`` into ``a``,
    even when ``a`` and ``c`` are not close. Compressing twice gives the same
    result as compressing once.

    Args:
        atol: Absolute tolerance for atom equality. 0 means exact equality.

    Returns:
        A new distribution with distinct atoms.

    """
    if atol < 0:
      msg = f"atol must be non-negative, got {atol}."
      raise ValueError(msg)
    atoms = np.asarray(self.atoms)
    weights = np.array(self.weights, dtype=np.float64)
    kept = np.ones(atoms.shape[0], dtype=bool)
    for i in range(atoms.shape[0] - 1, 0, -1):
      for j in range(i):
        if np.allclose(atoms[i], atoms[j], rtol=0.0, atol=atol):
          weights[j] += weights[i]
          kept[i] = False
          break
    logger.debug("Compressed %d atoms into %d.", atoms.shape[0], int(kept.sum()))
    return FixedAtomsProbabilityDistribution(
      atoms=jnp.asarray(atoms[kept]),
      weights=jnp.asarray(weights[kept], dtype=self.weights.dtype),
    )

  def check_normalized(self, atol: float = 1e-6) -> bool:
    """Report whether the weights sum to 1, logging a warning when they do not.

    The weights are never rescaled here: drift usually signals a sampling bug.
    """
    total = float(jnp.sum(self.weights))
    is_normalized = abs(total - 1.0) <= atol
    if not is_normalized:
      logger.warning("Distribution weights sum to %.8f instead of 1.", total)
    return is_normalized
