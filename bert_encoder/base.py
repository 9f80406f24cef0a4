"""Common capability shared by every encoder component."""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict

import torch
from torch import nn


class EncoderModule(nn.Module):
  """Base class for the layers that make up the encoder.

  Besides ``forward`` every component can report how many learned values it
  owns and hand out a detached copy of them.  Subclasses only implement
  ``forward``.
  """

  def parameter_count(self) -> int:
    # parameters() already skips tied weights, so each tensor counts once
    return sum(p.numel() for p in self.parameters())

  def serialize(self) -> Dict[str, torch.Tensor]:
    """Return a detached CPU copy of this module's persistent state."""
    return OrderedDict(
      (name, tensor.detach().cpu().clone())
      for name, tensor in self.state_dict().items()
    )
