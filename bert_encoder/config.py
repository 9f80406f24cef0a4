"""Configuration dataclass for the BERT encoder.

This module defines the :class:`ModelConfig` dataclass, which holds all
hyper‑parameters required to instantiate an encoder stack.  The config is
frozen: once validated it is never modified, and every component reads its
sizes from the same instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import torch

from .exceptions import ConfigError

ACTIVATIONS = ("gelu", "relu")
POSITION_EMBEDDING_TYPES = ("learned", "sinusoidal")


def _check_positive_int(name: str, value: Any) -> None:
  if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
    raise ConfigError(f"{name} must be a positive integer, got {value!r}.")


@dataclass(frozen=True)
class ModelConfig:
  """Structure holding hyper‑parameters for a BERT encoder.

  Attributes
  ----------
  src_vocab_size:
      Size of the vocabulary used to embed tokens.
  src_seq_len:
      Maximum (and default) length of the input sequences.
  num_encoder_layers:
      Number of stacked transformer encoder layers.
  d_model:
      Dimensionality of hidden representations within the model.
  num_heads:
      Number of attention heads.  ``d_model`` must be divisible by this
      value.
  dim_ffn:
      Width of the feed‑forward sub‑layer.  Defaults to ``4 * d_model``.
  dropout:
      Dropout probability in ``[0, 1)``, used for the embeddings, the
      attention weights, the feed‑forward sub‑layer and both residuals.
  attention_mask:
      Optional ``(src_seq_len, src_seq_len)`` mask.  Entry ``(i, j)`` set
      (``True`` or non‑zero) means query ``i`` may not attend to key ``j``.
  key_padding_mask:
      Optional ``(src_seq_len,)`` mask marking padded key positions.
  layer_norm_eps:
      Epsilon added to the variance in layer normalization.
  activation:
      Non‑linearity of the feed‑forward sub‑layer, ``"gelu"`` or ``"relu"``.
  position_embedding_type:
      ``"learned"`` for a trainable position table or ``"sinusoidal"`` for
      the fixed sine/cosine signal.
  pad_token_id:
      When set, positions whose id equals this value are treated as padding
      if no key padding mask is passed at call time.
  """

  src_vocab_size: int
  src_seq_len: int
  num_encoder_layers: int = 12
  d_model: int = 512
  num_heads: int = 8
  dim_ffn: Optional[int] = None
  dropout: float = 0.1
  attention_mask: Optional[torch.Tensor] = field(default=None, compare=False, repr=False)
  key_padding_mask: Optional[torch.Tensor] = field(default=None, compare=False, repr=False)
  layer_norm_eps: float = 1e-12
  activation: str = "gelu"
  position_embedding_type: str = "learned"
  pad_token_id: Optional[int] = None

  def __post_init__(self) -> None:
    """Validate configuration parameters after initialisation.

    Raises :class:`ConfigError` on the first invalid or inconsistent value.
    The frozen dataclass is only mutated here, to fill in ``dim_ffn`` and
    to normalise empty masks to ``None``.
    """
    _check_positive_int("src_vocab_size", self.src_vocab_size)
    _check_positive_int("src_seq_len", self.src_seq_len)
    _check_positive_int("num_encoder_layers", self.num_encoder_layers)
    _check_positive_int("d_model", self.d_model)
    _check_positive_int("num_heads", self.num_heads)
    if self.d_model % self.num_heads != 0:
      raise ConfigError(
        f"d_model ({self.d_model}) must be divisible by num_heads "
        f"({self.num_heads})."
      )

    if self.dim_ffn is None:
      object.__setattr__(self, "dim_ffn", 4 * self.d_model)
    _check_positive_int("dim_ffn", self.dim_ffn)

    if isinstance(self.dropout, bool) or not isinstance(self.dropout, (int, float)):
      raise ConfigError(f"dropout must be a float, got {self.dropout!r}.")
    if not 0.0 <= self.dropout < 1.0:
      raise ConfigError(f"dropout must be in [0, 1), got {self.dropout}.")
    if not self.layer_norm_eps > 0:
      raise ConfigError(f"layer_norm_eps must be positive, got {self.layer_norm_eps}.")
    if self.activation not in ACTIVATIONS:
      raise ConfigError(
        f"activation must be one of {ACTIVATIONS}, got {self.activation!r}."
      )
    if self.position_embedding_type not in POSITION_EMBEDDING_TYPES:
      raise ConfigError(
        f"position_embedding_type must be one of {POSITION_EMBEDDING_TYPES}, "
        f"got {self.position_embedding_type!r}."
      )
    if self.pad_token_id is not None and not 0 <= self.pad_token_id < self.src_vocab_size:
      raise ConfigError(
        f"pad_token_id ({self.pad_token_id}) must be a valid token id."
      )

    n = self.src_seq_len
    object.__setattr__(
      self, "attention_mask", self._check_mask("attention_mask", self.attention_mask, (n, n))
    )
    object.__setattr__(
      self, "key_padding_mask", self._check_mask("key_padding_mask", self.key_padding_mask, (n,))
    )

  @staticmethod
  def _check_mask(name, mask, expected_shape):
    if mask is None:
      return None
    if not isinstance(mask, torch.Tensor):
      mask = torch.as_tensor(mask)
    if mask.numel() == 0:
      return None
    if tuple(mask.shape) != expected_shape:
      raise ConfigError(
        f"{name} must have shape {expected_shape}, got {tuple(mask.shape)}."
      )
    return mask

  @property
  def head_dim(self) -> int:
    return self.d_model // self.num_heads

  def header(self) -> Dict[str, int]:
    """Shape metadata written alongside saved parameters."""
    return {
      "src_vocab_size": self.src_vocab_size,
      "src_seq_len": self.src_seq_len,
      "num_encoder_layers": self.num_encoder_layers,
      "d_model": self.d_model,
      "num_heads": self.num_heads,
      "dim_ffn": self.dim_ffn,
    }
