"""Output heads plugged on top of the encoder.

This module defines the heads that turn the final hidden states into task
outputs.  Every head takes the ``(batch_size, seq_len, d_model)`` output of
the encoder and optional labels, and returns a :class:`HeadOutput` with the
unnormalised logits and, when labels are given, the loss.  The encoder does
not know which head it is attached to.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

import torch
from torch import nn
import torch.nn.functional as F

from .base import EncoderModule
from .config import ModelConfig


class HeadOutput(NamedTuple):
  logits: torch.Tensor
  loss: Optional[torch.Tensor] = None


class OutputHead(EncoderModule):
  """Interface for task heads."""

  def forward(
    self, hidden_states: torch.Tensor, labels: Optional[torch.Tensor] = None
  ) -> HeadOutput:
    raise NotImplementedError


class MaskedLanguageModelHead(OutputHead):
  """Head for the masked language modelling objective.

  This head projects the hidden states back to the vocabulary space.
  It consists of a dense transformation, a non‑linearity, layer
  normalisation and a decoder.  Weight tying is supported by reusing
  the token embedding weights as the decoder’s weight matrix.
  """

  def __init__(
    self, config: ModelConfig, embeddings_weight: Optional[nn.Parameter] = None
  ) -> None:
    super().__init__()
    self.vocab_size = config.src_vocab_size
    self.dense = nn.Linear(config.d_model, config.d_model)
    self.layer_norm = nn.LayerNorm(config.d_model, eps=config.layer_norm_eps)
    self.decoder = nn.Linear(config.d_model, config.src_vocab_size, bias=False)
    self.bias = nn.Parameter(torch.zeros(config.src_vocab_size))
    if embeddings_weight is not None:
      # Tie decoder weight to the embeddings if provided
      self.decoder.weight = embeddings_weight

  def forward(
    self, hidden_states: torch.Tensor, labels: Optional[torch.Tensor] = None
  ) -> HeadOutput:
    """Predict vocabulary logits for every position.

    Parameters
    ----------
    hidden_states:
        Tensor of shape ``(batch_size, seq_len, d_model)`` from the
        final encoder layer.
    labels:
        Optional tensor of shape ``(batch_size, seq_len)`` with the target
        token IDs.  Positions not used for the loss hold ``-100``.

    Returns
    -------
    HeadOutput
        Vocabulary logits of shape ``(batch_size, seq_len, vocab_size)``
        and the cross entropy loss when ``labels`` is given.
    """
    x = self.dense(hidden_states)
    x = F.gelu(x)
    x = self.layer_norm(x)
    logits = self.decoder(x) + self.bias

    loss = None
    if labels is not None:
      loss = F.cross_entropy(
        logits.reshape(-1, self.vocab_size), labels.reshape(-1), ignore_index=-100
      )
    return HeadOutput(logits, loss)


class SequenceClassificationHead(OutputHead):
  """Classify a whole sequence from its first position.

  The hidden state of the first token (the [CLS] token in BERT inputs) goes
  through a ``tanh`` pooler and a linear classifier.
  """

  def __init__(self, config: ModelConfig, num_labels: int = 2) -> None:
    super().__init__()
    self.num_labels = num_labels
    self.pooler = nn.Linear(config.d_model, config.d_model)
    self.dropout = nn.Dropout(config.dropout)
    self.classifier = nn.Linear(config.d_model, num_labels)

  def forward(
    self, hidden_states: torch.Tensor, labels: Optional[torch.Tensor] = None
  ) -> HeadOutput:
    cls_token = hidden_states[:, 0]
    pooled_output = torch.tanh(self.pooler(cls_token))
    logits = self.classifier(self.dropout(pooled_output))

    loss = None
    if labels is not None:
      loss = F.cross_entropy(logits.view(-1, self.num_labels), labels.view(-1))
    return HeadOutput(logits, loss)
