"""Saving and loading model parameters.

A checkpoint is a single :func:`torch.save` payload holding a format
version, the shape header of the :class:`~bert_encoder.config.ModelConfig`
and the model's state dict.  Loading checks the header, the parameter names
and every tensor shape before any parameter is touched, so a mismatching
file leaves the live model as it was.

Loading replaces parameters in place and must not run concurrently with a
forward pass on the same model; callers provide that exclusion.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Union

import torch

from .bert_model import BertModel
from .exceptions import FormatError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

PathLike = Union[str, "os.PathLike[str]"]


def save_model(model: BertModel, path: PathLike) -> None:
  """Write the model's configuration header and parameters to ``path``.

  The payload is written to a temporary file next to ``path`` and moved into
  place, so an interrupted save never leaves a truncated checkpoint.

  Raises
  ------
  OSError
      If the location cannot be written.
  """
  path = Path(path)
  path.parent.mkdir(parents=True, exist_ok=True)
  payload = {
    "format_version": FORMAT_VERSION,
    "header": model.config.header(),
    "state_dict": model.serialize(),
  }
  tmp_path = path.with_name(path.name + ".tmp")
  try:
    with open(tmp_path, "wb") as f:
      torch.save(payload, f)
    os.replace(tmp_path, path)
  except BaseException:
    if tmp_path.exists():
      tmp_path.unlink()
    raise
  logger.info(f"Saved model with {model.parameter_count():,} parameters to {path}")


def _read_checkpoint(path: Path) -> Dict[str, Any]:
  with open(path, "rb") as f:
    try:
      payload = torch.load(f, map_location="cpu", weights_only=True)
    except OSError:
      raise
    except Exception as exc:
      # the weights-only unpickler fails with assorted types on foreign files
      raise FormatError(f"{path} is not a readable checkpoint: {exc}") from exc
  if not isinstance(payload, dict) or not {"header", "state_dict"} <= payload.keys():
    raise FormatError(f"{path} does not contain a header and a state dict.")
  if not isinstance(payload["header"], dict) or not isinstance(payload["state_dict"], dict):
    raise FormatError(f"{path} has a malformed header or state dict.")
  if payload.get("format_version") != FORMAT_VERSION:
    raise FormatError(
      f"{path} has format version {payload.get('format_version')!r}, "
      f"expected {FORMAT_VERSION}."
    )
  return payload


def _check_compatible(model: BertModel, payload: Dict[str, Any], path: Path) -> None:
  expected = model.config.header()
  header = payload["header"]
  mismatched = {
    key: (header.get(key), value)
    for key, value in expected.items()
    if header.get(key) != value
  }
  if mismatched:
    details = ", ".join(
      f"{key}: saved {saved!r} != live {live!r}"
      for key, (saved, live) in mismatched.items()
    )
    logger.warning(f"Refusing to load {path}: {details}")
    raise FormatError(f"Checkpoint header does not match the model config ({details}).")

  live_state = model.state_dict()
  saved_state = payload["state_dict"]
  missing = sorted(live_state.keys() - saved_state.keys())
  unexpected = sorted(saved_state.keys() - live_state.keys())
  if missing or unexpected:
    raise FormatError(
      f"Checkpoint parameters do not match the model: missing {missing}, "
      f"unexpected {unexpected}."
    )
  for name, tensor in live_state.items():
    saved = saved_state[name]
    if not isinstance(saved, torch.Tensor) or saved.shape != tensor.shape:
      saved_shape = tuple(saved.shape) if isinstance(saved, torch.Tensor) else type(saved).__name__
      raise FormatError(
        f"Parameter {name} has shape {saved_shape} in the checkpoint, "
        f"expected {tuple(tensor.shape)}."
      )


def load_model(model: BertModel, path: PathLike) -> None:
  """Restore parameters saved by :func:`save_model` into ``model``.

  Either every parameter is replaced or, on any error, the model keeps its
  previous parameters.

  Raises
  ------
  OSError
      If ``path`` cannot be read.
  FormatError
      If the file is not a checkpoint or its header, parameter names or
      shapes do not match ``model``.
  """
  path = Path(path)
  payload = _read_checkpoint(path)
  _check_compatible(model, payload, path)

  backup = model.serialize()
  try:
    model.load_state_dict(payload["state_dict"], strict=True)
  except BaseException:
    model.load_state_dict(backup, strict=True)
    raise
  logger.info(f"Loaded model parameters from {path}")
