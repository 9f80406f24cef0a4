"""Parameter initialization strategies.

An initializer is a callable applied to every sub‑module through
:meth:`torch.nn.Module.apply`.  :class:`~bert_encoder.bert_model.BertModel`
takes one at construction time, so a different rule can be injected without
touching the model code.
"""

from __future__ import annotations

from torch import nn


class Initializer:
  """Base strategy: subclasses fill the weights of a single module."""

  def __call__(self, module: nn.Module) -> None:
    if isinstance(module, nn.Linear):
      self.init_weight(module.weight)
      if module.bias is not None:
        nn.init.zeros_(module.bias)
    elif isinstance(module, nn.Embedding):
      self.init_weight(module.weight)
    elif isinstance(module, nn.LayerNorm):
      nn.init.ones_(module.weight)
      nn.init.zeros_(module.bias)

  def init_weight(self, weight: nn.Parameter) -> None:
    raise NotImplementedError


class XavierInitialization(Initializer):
  """Glorot uniform weights, zero biases."""

  def __init__(self, gain: float = 1.0) -> None:
    self.gain = gain

  def init_weight(self, weight: nn.Parameter) -> None:
    nn.init.xavier_uniform_(weight, gain=self.gain)


class NormalInitialization(Initializer):
  """Zero‑mean normal weights with a small standard deviation (BERT's rule)."""

  def __init__(self, std: float = 0.02) -> None:
    self.std = std

  def init_weight(self, weight: nn.Parameter) -> None:
    nn.init.normal_(weight, mean=0.0, std=self.std)
