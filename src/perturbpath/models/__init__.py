"""Configurations and data structures for perturbpath."""

from .distribution import FixedAtomsProbabilityDistribution
from .grid import DIRECTIONS, QUEEN_DIRECTIONS, ROOK_DIRECTIONS, GridGraph
from .perturbed import PerturbedConfig
from .training import DatasetConfig, ExperimentConfig, TrainingConfig, TrainingHistory
from .types import (
  BatchPathMatrix,
  Connectivity,
  CostMatrix,
  Image,
  LossType,
  Maximizer,
  PathMatrix,
  PerturbedLayerFn,
)

__all__ = [
  "DIRECTIONS",
  "QUEEN_DIRECTIONS",
  "ROOK_DIRECTIONS",
  "BatchPathMatrix",
  "Connectivity",
  "CostMatrix",
  "DatasetConfig",
  "ExperimentConfig",
  "FixedAtomsProbabilityDistribution",
  "GridGraph",
  "Image",
  "LossType",
  "Maximizer",
  "PathMatrix",
  "PerturbedConfig",
  "PerturbedLayerFn",
  "TrainingConfig",
  "TrainingHistory",
]
