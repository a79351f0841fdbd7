"""Main entry point for running a training experiment."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import jax

from perturbpath.combinatorial.maximizers import MAXIMIZER_REGISTRY, get_maximizer
from perturbpath.io import (
  EMBEDDING_FILENAME,
  HISTORY_FILENAME,
  create_metadata_file,
  save_embedding,
  save_history,
)
from perturbpath.models.grid import DIRECTIONS
from perturbpath.models.perturbed import PerturbedConfig
from perturbpath.models.training import (
  LOSS_TYPES,
  DatasetConfig,
  ExperimentConfig,
  TrainingConfig,
)
from perturbpath.training.data import generate_synthetic_dataset, train_test_split
from perturbpath.training.embedding import SatelliteEmbedding
from perturbpath.training.trainer import build_item_loss, train_embedding

if TYPE_CHECKING:
  from collections.abc import Sequence

  import equinox as eqx

  from perturbpath.models.training import TrainingHistory

logger = logging.getLogger(__name__)


def run_experiment(
  config: ExperimentConfig,
  output_dir: str | Path,
) -> tuple[eqx.Module, TrainingHistory]:
  """Generate data, train the default embedding and save the results.

  Writes ``metadata.json``, ``history.msgpack`` and ``embedding.eqx`` into
  ``output_dir``, which is created if needed.
  """
  output_path = Path(output_dir)
  output_path.mkdir(parents=True, exist_ok=True)
  create_metadata_file(config, output_path)
  logger.info(
    "Starting %s experiment with %s maximizer, epsilon=%s, num_samples=%d.",
    config.training.loss_type,
    config.perturbed.maximizer,
    config.perturbed.epsilon,
    config.perturbed.num_samples,
  )

  items = generate_synthetic_dataset(config.dataset, connectivity=config.perturbed.connectivity)
  train_items, test_items = train_test_split(items, config.dataset.train_fraction)
  maximizer = get_maximizer(config.perturbed)
  item_loss = build_item_loss(config.training.loss_type, maximizer, config.perturbed)

  key = jax.random.PRNGKey(config.training.prng_seed)
  key, init_key = jax.random.split(key)
  embedding = SatelliteEmbedding((config.dataset.height, config.dataset.width), key=init_key)
  embedding, history = train_embedding(
    embedding,
    train_items,
    test_items,
    item_loss,
    maximizer,
    config.training,
    key,
  )

  save_history(history, output_path / HISTORY_FILENAME)
  save_embedding(embedding, output_path / EMBEDDING_FILENAME)
  logger.info(
    "Finished experiment. Final cost gap: train %.2f%%, test %.2f%%. Results in %s",
    float(history.train_gaps[-1]),
    float(history.test_gaps[-1]),
    output_path,
  )
  return embedding, history


def build_parser() -> argparse.ArgumentParser:
  """Command-line interface of ``perturbpath-train``."""
  parser = argparse.ArgumentParser(
    description="Learn a path-planning embedding through a perturbed shortest-path layer.",
  )
  parser.add_argument(
    "--output_dir",
    type=str,
    default="perturbpath_results",
    help="Directory for saving results.",
  )
  parser.add_argument("--seed", type=int, default=42, help="RNG seed for training.")
  parser.add_argument("--epsilon", type=float, default=0.1, help="Perturbation scale.")
  parser.add_argument("--num_samples", type=int, default=10, help="Monte Carlo samples.")
  parser.add_argument(
    "--maximizer",
    type=str,
    default="bellman",
    choices=sorted(MAXIMIZER_REGISTRY),
    help="Shortest-path oracle.",
  )
  parser.add_argument(
    "--connectivity",
    type=str,
    default="queen",
    choices=sorted(DIRECTIONS),
    help="Grid neighbourhood.",
  )
  parser.add_argument("--num_epochs", type=int, default=10, help="Training epochs.")
  parser.add_argument("--batch_size", type=int, default=5, help="Items per update.")
  parser.add_argument("--learning_rate", type=float, default=1e-3, help="Adam step size.")
  parser.add_argument(
    "--loss_type",
    type=str,
    default="imitation",
    choices=LOSS_TYPES,
    help="Learning by imitation (Fenchel-Young) or by experience (expected cost).",
  )
  parser.add_argument("--num_items", type=int, default=100, help="Synthetic dataset size.")
  parser.add_argument("--grid_size", type=int, default=12, help="Side length of the grid.")
  parser.add_argument(
    "--log-level",
    type=str,
    default="INFO",
    choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    help="Logging level.",
  )
  return parser


def config_from_args(args: argparse.Namespace) -> ExperimentConfig:
  """Assemble the experiment configuration from parsed arguments."""
  return ExperimentConfig(
    dataset=DatasetConfig(
      num_items=args.num_items,
      height=args.grid_size,
      width=args.grid_size,
    ),
    perturbed=PerturbedConfig(
      epsilon=args.epsilon,
      num_samples=args.num_samples,
      maximizer=args.maximizer,
      connectivity=args.connectivity,
    ),
    training=TrainingConfig(
      num_epochs=args.num_epochs,
      batch_size=args.batch_size,
      learning_rate=args.learning_rate,
      loss_type=args.loss_type,
      prng_seed=args.seed,
    ),
  )


def main(argv: Sequence[str] | None = None) -> None:
  """Run one experiment from the command line."""
  args = build_parser().parse_args(argv)
  output_dir = Path(args.output_dir)
  output_dir.mkdir(parents=True, exist_ok=True)

  logging.basicConfig(
    level=getattr(logging, args.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
      logging.FileHandler(output_dir / "perturbpath.log"),
      logging.StreamHandler(),
    ],
  )

  run_experiment(config_from_args(args), output_dir)


if __name__ == "__main__":
  main()
