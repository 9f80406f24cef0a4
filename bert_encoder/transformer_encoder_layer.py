"""Transformer encoder layer used in the BERT model.

The :class:`TransformerEncoderLayer` encapsulates a single transformer block
composed of multi‑head self‑attention, followed by a position‑wise feed‑
forward network.  Each sub‑layer's output goes through dropout, is added
back to the sub‑layer's input and the sum is layer‑normalised (post‑norm,
as in the original BERT).  This layer forms the building block of the
encoder stack.
"""

from __future__ import annotations

from typing import Optional, Tuple

import torch
from torch import nn

from .base import EncoderModule
from .config import ModelConfig
from .feed_forward import FeedForwardSublayer
from .multi_head_attention import MultiHeadSelfAttention


class TransformerEncoderLayer(EncoderModule):
  """Single transformer encoder layer.

  Parameters
  ----------
  config:
      Configuration containing model hyper‑parameters.
  """

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    self.attention = MultiHeadSelfAttention(config)
    self.dropout1 = nn.Dropout(config.dropout)
    self.norm1 = nn.LayerNorm(config.d_model, eps=config.layer_norm_eps)

    self.feed_forward = FeedForwardSublayer(config)
    self.dropout2 = nn.Dropout(config.dropout)
    self.norm2 = nn.LayerNorm(config.d_model, eps=config.layer_norm_eps)

  def forward(
    self,
    hidden_states: torch.Tensor,
    attention_bias: Optional[torch.Tensor] = None,
  ) -> Tuple[torch.Tensor, torch.Tensor]:
    """Apply the transformer layer to the hidden states.

    Parameters
    ----------
    hidden_states:
        Tensor of shape ``(batch_size, seq_len, d_model)`` containing
        the input activations.
    attention_bias:
        Optional additive mask bias, shared with the other layers.

    Returns
    -------
    Tuple[torch.Tensor, torch.Tensor]
        A tuple ``(hidden_states, attentions)``.  The first element is
        the output of the layer with shape ``(batch_size, seq_len, d_model)``.
        The second element contains the attention probabilities from the
        self‑attention module.
    """
    # Self‑attention with residual connection and layer norm
    attn_output, attn_probs = self.attention(hidden_states, attention_bias)
    hidden_states = hidden_states + self.dropout1(attn_output)
    hidden_states = self.norm1(hidden_states)

    # Feed‑forward network
    ffn_output = self.feed_forward(hidden_states)
    hidden_states = hidden_states + self.dropout2(ffn_output)
    hidden_states = self.norm2(hidden_states)
    return hidden_states, attn_probs
