"""Default convolutional embedding from terrain images to cell scores."""

from __future__ import annotations

from typing import TYPE_CHECKING

import equinox as eqx
import jax
import jax.numpy as jnp

if TYPE_CHECKING:
  from jaxtyping import PRNGKeyArray

  from perturbpath.models.types import CostMatrix, Image


class SatelliteEmbedding(eqx.Module):
  """Small CNN predicting one non-positive score per grid cell.

  conv -> relu -> conv -> adaptive max-pool to the grid -> channel average
  -> ``-softplus``. Scores are negated costs, so the output can be fed to any
  maximizer, Dijkstra included.
  """

  conv_in: eqx.nn.Conv2d
  conv_out: eqx.nn.Conv2d
  pool: eqx.nn.AdaptiveMaxPool2d

  def __init__(
    self,
    grid_shape: tuple[int, int],
    in_channels: int = 3,
    hidden_channels: int = 16,
    *,
    key: PRNGKeyArray,
  ) -> None:
    """Initialise the layers.

    Args:
      grid_shape: (height, width) of the output score matrix.
      in_channels: Number of image channels.
      hidden_channels: Width of the convolutional layers.
      key: PRNG key for weight initialisation.

    """
    key_in, key_out = jax.random.split(key)
    self.conv_in = eqx.nn.Conv2d(in_channels, hidden_channels, kernel_size=3, padding=1, key=key_in)
    self.conv_out = eqx.nn.Conv2d(
      hidden_channels,
      hidden_channels,
      kernel_size=3,
      padding=1,
      key=key_out,
    )
    self.pool = eqx.nn.AdaptiveMaxPool2d(target_shape=grid_shape)

  def __call__(self, x: Image) -> CostMatrix:
    """Map a (channels, height, width) image to a (grid_height, grid_width) score matrix."""
    hidden = jax.nn.relu(self.conv_in(x))
    hidden = self.pool(self.conv_out(hidden))
    return -jax.nn.softplus(jnp.mean(hidden, axis=0))
