"""Utility functions for solution-quality metrics."""

from .metrics import batch_cost_ratios, cost_gap, cost_ratio, path_cost

__all__ = [
  "batch_cost_ratios",
  "cost_gap",
  "cost_ratio",
  "path_cost",
]
