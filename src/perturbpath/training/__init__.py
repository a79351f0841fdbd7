"""Embedding, synthetic data and training loop."""

from .data import (
  DatasetItem,
  generate_synthetic_dataset,
  iterate_minibatches,
  stack_items,
  train_test_split,
)
from .embedding import SatelliteEmbedding
from .trainer import build_item_loss, train_embedding

__all__ = [
  "DatasetItem",
  "SatelliteEmbedding",
  "build_item_loss",
  "generate_synthetic_dataset",
  "iterate_minibatches",
  "stack_items",
  "train_embedding",
  "train_test_split",
]
