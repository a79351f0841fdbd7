"""Package for learning with perturbed combinatorial optimization layers."""

from . import combinatorial, io, models, runner, training, utils

__all__ = [
  "combinatorial",
  "io",
  "models",
  "runner",
  "training",
  "utils",
]
