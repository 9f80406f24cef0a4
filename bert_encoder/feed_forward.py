"""Position‑wise feed‑forward sub‑layer."""

from __future__ import annotations

import torch
from torch import nn
import torch.nn.functional as F

from .base import EncoderModule
from .config import ModelConfig

_ACTIVATIONS = {
  "gelu": F.gelu,
  "relu": F.relu,
}


class FeedForwardSublayer(EncoderModule):
  """Expand to ``dim_ffn``, apply the non‑linearity and dropout, project back.

  Every position is transformed independently with the same weights.
  """

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    self.intermediate = nn.Linear(config.d_model, config.dim_ffn)
    self.intermediate_act_fn = _ACTIVATIONS[config.activation]
    self.dropout = nn.Dropout(config.dropout)
    self.output = nn.Linear(config.dim_ffn, config.d_model)

  def forward(self, hidden_states: torch.Tensor) -> torch.Tensor:
    intermediate_output = self.intermediate_act_fn(self.intermediate(hidden_states))
    intermediate_output = self.dropout(intermediate_output)
    return self.output(intermediate_output)
