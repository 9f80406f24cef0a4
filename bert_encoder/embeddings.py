"""Embedding layer for the BERT encoder.

This module defines a :class:`BertEmbeddings` class that composes a token
embedding table with a positional signal.  The two are summed and passed
through a dropout layer.  The positional signal is either a learned table
(as in the original BERT) or the fixed sine/cosine encoding from
"Attention Is All You Need"; both are pure functions of the position index
once the parameters are frozen.
"""

from __future__ import annotations

import math

import torch
from torch import nn

from .base import EncoderModule
from .config import ModelConfig
from .exceptions import ShapeError


class LearnedPositionalEncoding(EncoderModule):
  """Trainable table with one vector per position."""

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    self.position_embeddings = nn.Embedding(config.src_seq_len, config.d_model)

  def forward(self, seq_length: int) -> torch.Tensor:
    position_ids = torch.arange(
      seq_length, dtype=torch.long, device=self.position_embeddings.weight.device
    )
    return self.position_embeddings(position_ids)


class SinusoidalPositionalEncoding(EncoderModule):
  """Fixed sine/cosine signal of shape ``(src_seq_len, d_model)``.

  Even feature indices carry ``sin(pos / 10000^(2i/d_model))`` and odd ones
  the matching cosine.  The table is a non‑persistent buffer: it is rebuilt
  from the config and never written to checkpoints.
  """

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    d_model = config.d_model
    pe = torch.zeros(config.src_seq_len, d_model)
    position = torch.arange(0, config.src_seq_len, dtype=torch.float).unsqueeze(1)
    div_term = torch.exp(
      torch.arange(0, d_model, 2).float() * (-math.log(10000.0) / d_model)
    )
    pe[:, 0::2] = torch.sin(position * div_term)
    # odd d_model has one fewer cosine column than sine columns
    pe[:, 1::2] = torch.cos(position * div_term)[:, : d_model // 2]
    self.register_buffer("pe", pe, persistent=False)

  def forward(self, seq_length: int) -> torch.Tensor:
    return self.pe[:seq_length]


class BertEmbeddings(EncoderModule):
  """Construct embeddings from token ids and their positions.

  Parameters
  ----------
  config:
      Configuration containing model hyper‑parameters.  Only those fields
      relevant to the embeddings are used.
  """

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    self.vocab_size = config.src_vocab_size
    self.max_seq_len = config.src_seq_len
    self.word_embeddings = nn.Embedding(config.src_vocab_size, config.d_model)
    if config.position_embedding_type == "sinusoidal":
      self.position_encoding: EncoderModule = SinusoidalPositionalEncoding(config)
    else:
      self.position_encoding = LearnedPositionalEncoding(config)
    self.dropout = nn.Dropout(config.dropout)

  def forward(self, input_ids: torch.Tensor) -> torch.Tensor:
    """Embed the input token IDs.

    Parameters
    ----------
    input_ids:
        Tensor of shape ``(batch_size, seq_length)`` containing token
        indices in the vocabulary, with ``seq_length <= src_seq_len``.

    Returns
    -------
    torch.Tensor
        The embedded representation of shape ``(batch_size, seq_length, d_model)``.

    Raises
    ------
    ShapeError
        If ``input_ids`` is not 2‑D or is longer than ``src_seq_len``.
    IndexError
        If any id lies outside ``[0, src_vocab_size)``.
    """
    if input_ids.dim() != 2:
      raise ShapeError(
        f"input_ids must have shape (batch_size, seq_len), got {tuple(input_ids.shape)}."
      )
    seq_length = input_ids.size(1)
    if seq_length > self.max_seq_len:
      raise ShapeError(
        f"Sequence length {seq_length} exceeds src_seq_len ({self.max_seq_len})."
      )
    if input_ids.numel() > 0:
      low, high = int(input_ids.min()), int(input_ids.max())
      if low < 0 or high >= self.vocab_size:
        bad = low if low < 0 else high
        raise IndexError(
          f"Token id {bad} is out of range for vocabulary of size {self.vocab_size}."
        )

    word_embed = self.word_embeddings(input_ids)
    # (seq_length, d_model) broadcasts over the batch
    pos_embed = self.position_encoding(seq_length)
    embeddings = word_embed + pos_embed
    embeddings = self.dropout(embeddings)
    return embeddings
