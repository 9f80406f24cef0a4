"""Utility functions for the BERT encoder."""

from __future__ import annotations

import torch


def get_torch_accelerator() -> torch.device:
  """Pick the device the demo scripts run the encoder on.

  Preference order is TPU (when ``torch_xla`` is installed), CUDA, Apple MPS
  and finally the CPU.  Checkpoints are always loaded to CPU first by
  :func:`~bert_encoder.persistence.load_model`, so any of these works with
  saved models.
  """
  try:
    import torch_xla.core.xla_model as xm

    return xm.xla_device()
  except ImportError:
    pass

  if torch.cuda.is_available():
    return torch.device("cuda")

  if torch.backends.mps.is_available():
    return torch.device("mps")

  return torch.device("cpu")
