"""Multi‑head self‑attention implementation for the BERT encoder.

This module contains the :class:`MultiHeadSelfAttention` class, which
performs the core computation of the transformer encoder.  It projects
the input tensor into query, key and value tensors, splits them across
multiple heads, computes scaled dot‑product attention under an additive
mask bias and returns a combined representation.

A query whose keys are all masked out has no valid distribution to
normalise.  Its attention weights are defined as all zeros and its attention
output, after the output projection, is zero as well, instead of the NaN a
plain softmax would produce.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import torch
from torch import nn
import torch.nn.functional as F

from .base import EncoderModule
from .config import ModelConfig


class MultiHeadSelfAttention(EncoderModule):
  """Multi‑head self‑attention layer.

  Parameters
  ----------
  config:
      Instance of :class:`ModelConfig` specifying model sizes.
  """

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    self.num_heads = config.num_heads
    self.d_model = config.d_model
    self.head_dim = config.head_dim
    self.scale = 1.0 / math.sqrt(self.head_dim)

    # Projection matrices for query, key and value.  Each maps from
    # d_model to d_model.  They will be split into heads in the forward pass.
    self.query = nn.Linear(self.d_model, self.d_model)
    self.key = nn.Linear(self.d_model, self.d_model)
    self.value = nn.Linear(self.d_model, self.d_model)
    self.out_proj = nn.Linear(self.d_model, self.d_model)

    self.dropout = nn.Dropout(config.dropout)

  def transpose_for_scores(self, x: torch.Tensor) -> torch.Tensor:
    """Reshape a tensor for multi‑head attention.

    Given a tensor of shape ``(batch_size, seq_len, d_model)`` this
    function splits the last dimension into ``(num_heads, head_dim)`` and
    rearranges the dimensions to produce a shape of
    ``(batch_size, num_heads, seq_len, head_dim)``.
    """
    new_shape = x.size()[:-1] + (self.num_heads, self.head_dim)
    x = x.view(*new_shape)
    return x.permute(0, 2, 1, 3)

  def forward(
    self,
    hidden_states: torch.Tensor,
    attention_bias: Optional[torch.Tensor] = None,
  ) -> Tuple[torch.Tensor, torch.Tensor]:
    """Compute self‑attention over the input.

    Parameters
    ----------
    hidden_states:
        Tensor of shape ``(batch_size, seq_len, d_model)`` representing
        the sequence of hidden states to attend over.
    attention_bias:
        Optional additive bias of shape ``(seq_len, seq_len)`` or
        ``(batch_size, seq_len, seq_len)`` as built by
        :class:`~bert_encoder.masks.MaskGenerator`: ``0`` for allowed pairs
        and ``-inf`` for blocked ones.

    Returns
    -------
    Tuple[torch.Tensor, torch.Tensor]
        A tuple of ``(attention_output, attention_probs)`` where
        ``attention_output`` has shape ``(batch_size, seq_len, d_model)``
        and ``attention_probs`` has shape
        ``(batch_size, num_heads, seq_len, seq_len)``.  Each row of
        ``attention_probs`` sums to 1, or to 0 for fully masked queries
        (before dropout).
        Rows of ``attention_output`` for fully masked queries are zero.
    """
    # Linearly project the inputs to query, key and value
    query_layer = self.transpose_for_scores(self.query(hidden_states))
    key_layer = self.transpose_for_scores(self.key(hidden_states))
    value_layer = self.transpose_for_scores(self.value(hidden_states))

    # (batch, heads, seq_len, head_dim) x (batch, heads, head_dim, seq_len) -> (batch, heads, seq_len, seq_len)
    attention_scores = torch.matmul(query_layer, key_layer.transpose(-1, -2)) * self.scale

    fully_masked = None
    if attention_bias is not None:
      if attention_bias.dim() == 3:
        # per‑example bias: add the head axis
        attention_bias = attention_bias.unsqueeze(1)
      attention_scores = attention_scores + attention_bias.to(attention_scores.dtype)
      fully_masked = torch.isneginf(attention_bias).all(dim=-1, keepdim=True)
      if bool(fully_masked.any()):
        # keep the softmax finite on rows with nothing to attend to
        attention_scores = attention_scores.masked_fill(fully_masked, 0.0)
      else:
        fully_masked = None

    # Convert scores to probabilities
    attention_probs = F.softmax(attention_scores, dim=-1)
    if fully_masked is not None:
      attention_probs = attention_probs.masked_fill(fully_masked, 0.0)
    dropped_probs = self.dropout(attention_probs)

    # Weighted sum of the values
    context_layer = torch.matmul(dropped_probs, value_layer)
    # Concatenate heads and project
    context_layer = context_layer.permute(0, 2, 1, 3).contiguous()
    new_context_shape = context_layer.size()[:-2] + (self.d_model,)
    context_layer = context_layer.view(*new_context_shape)
    attention_output = self.out_proj(context_layer)
    if fully_masked is not None:
      # (seq_len, 1) or (batch, 1, seq_len, 1) -> broadcastable over (batch, seq_len, d_model)
      query_mask = fully_masked.squeeze(1) if fully_masked.dim() == 4 else fully_masked
      attention_output = attention_output.masked_fill(query_mask, 0.0)
    return attention_output, attention_probs
