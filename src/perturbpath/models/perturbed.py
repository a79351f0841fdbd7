"""Configuration for the perturbed combinatorial layer."""

from __future__ import annotations

from dataclasses import dataclass, field

from perturbpath.models.grid import DIRECTIONS
from perturbpath.models.types import Connectivity  # noqa: TC001


@dataclass(frozen=True)
class PerturbedConfig:
  """Configuration of a perturbed maximizer.

  Attributes:
      epsilon: Scale of the Gaussian perturbation. 0 disables smoothing.
      num_samples: Number of Monte Carlo samples drawn per call.
      maximizer: Name of a registered maximizer ("dijkstra" or "bellman").
      connectivity: Grid neighbour pattern handed to the maximizer.
      length_max: Hop bound for the Bellman-Ford maximizer. None means the
          number of vertices.

  """

  epsilon: float = field(default=0.1)
  num_samples: int = field(default=10)
  maximizer: str = field(default="bellman")
  connectivity: Connectivity = field(default="queen")
  length_max: int | None = field(default=None)

  def _validate_types(self) -> None:
    """Check types of the fields."""
    if isinstance(self.epsilon, bool) or not isinstance(self.epsilon, (int, float)):
      msg = f"Expected epsilon to be a float, got {type(self.epsilon)}"
      raise TypeError(msg)
    if isinstance(self.num_samples, bool) or not isinstance(self.num_samples, int):
      msg = f"Expected num_samples to be an integer, got {type(self.num_samples)}"
      raise TypeError(msg)
    if not isinstance(self.maximizer, str):
      msg = f"Expected maximizer to be a string, got {type(self.maximizer)}"
      raise TypeError(msg)
    if self.length_max is not None and (
      isinstance(self.length_max, bool) or not isinstance(self.length_max, int)
    ):
      msg = f"Expected length_max to be an integer or None, got {type(self.length_max)}"
      raise TypeError(msg)

  def _check_values(self) -> None:
    """Check values of the fields."""
    if self.epsilon < 0:
      msg = f"epsilon must be non-negative, got {self.epsilon}."
      raise ValueError(msg)
    if self.num_samples < 1:
      msg = f"num_samples must be >= 1, got {self.num_samples}."
      raise ValueError(msg)
    if self.connectivity not in DIRECTIONS:
      msg = f"connectivity must be one of {list(DIRECTIONS)}, got {self.connectivity!r}."
      raise ValueError(msg)
    if self.length_max is not None and self.length_max < 1:
      msg = f"length_max must be >= 1, got {self.length_max}."
      raise ValueError(msg)

  def __post_init__(self) -> None:
    """Validate the perturbation configuration."""
    self._validate_types()
    self._check_values()

  @property
  def maximizer_kwargs(self) -> dict[str, object]:
    """Keyword context forwarded to the maximizer on every call."""
    kwargs: dict[str, object] = {"connectivity": self.connectivity}
    if self.maximizer == "bellman":
      kwargs["length_max"] = self.length_max
    return kwargs
