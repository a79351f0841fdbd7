"""I/O utilities for experiment tracking: run metadata, training history and weights."""

import json
import shutil
import subprocess
from dataclasses import asdict, fields, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import equinox as eqx
import numpy as np
from flax.serialization import from_state_dict, msgpack_restore, msgpack_serialize, to_state_dict

from perturbpath.models.training import TrainingHistory

METADATA_FILENAME = "metadata.json"
HISTORY_FILENAME = "history.msgpack"
EMBEDDING_FILENAME = "embedding.eqx"


def get_git_commit_hash(repo_dir: Path | None = None) -> str | None:
  """Return the HEAD commit of the repository holding ``repo_dir``.

  ``repo_dir`` defaults to the working directory. ``None`` is returned when
  git is missing, the directory is not tracked, or it has no commit yet.
  """
  git = shutil.which("git")
  if git is None:
    return None
  command = [git, "rev-parse", "--verify", "--quiet", "HEAD"]
  if repo_dir is not None:
    command[1:1] = ["-C", str(repo_dir)]
  try:
    completed = subprocess.run(command, capture_output=True, text=True, check=False, timeout=5)  # noqa: S603
  except (OSError, subprocess.TimeoutExpired):
    return None
  commit = completed.stdout.strip()
  return commit if completed.returncode == 0 and commit else None


def config_to_dict(config: object) -> dict[str, Any] | str:
  """Convert a (possibly nested) configuration dataclass to plain data."""
  if not is_dataclass(config) or isinstance(config, type):
    return str(config)
  config_data: dict[str, Any] = {}
  for field_info in fields(config):
    value = getattr(config, field_info.name)
    if is_dataclass(value) and not isinstance(value, type):
      config_data[field_info.name] = asdict(value)
    else:
      config_data[field_info.name] = value
  return config_data


def create_metadata_file(config: object, output_path: Path) -> Path:
  """Write a metadata JSON file with the run configuration and git info.

  Args:
      config: The experiment configuration object.
      output_path: Directory where the metadata file is saved.

  Returns:
      Path of the written file.

  """
  metadata = {
    "timestamp": datetime.now().isoformat(),  # noqa: DTZ005
    "git_commit_hash": get_git_commit_hash(),
    "config": config_to_dict(config),
  }

  metadata_path = output_path / METADATA_FILENAME
  with metadata_path.open("w") as f:
    json.dump(metadata, f, indent=2, default=str)
  return metadata_path


def save_history(history: TrainingHistory, path: Path) -> None:
  """Serialize a training history to msgpack."""
  state = {name: np.asarray(value) for name, value in to_state_dict(history).items()}
  path.write_bytes(msgpack_serialize(state))


def load_history(path: Path) -> TrainingHistory:
  """Read a training history written by ``save_history``."""
  state = msgpack_restore(path.read_bytes())
  num_epochs = int(np.asarray(state["train_losses"]).shape[0])
  return from_state_dict(TrainingHistory.empty(num_epochs), state)


def save_embedding(embedding: eqx.Module, path: Path) -> None:
  """Serialize the array leaves of an embedding."""
  eqx.tree_serialise_leaves(path, embedding)


def load_embedding(path: Path, like: eqx.Module) -> eqx.Module:
  """Load leaves written by ``save_embedding`` into a module with the same structure as ``like``."""
  return eqx.tree_deserialise_leaves(path, like)
