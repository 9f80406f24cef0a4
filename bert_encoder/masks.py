"""Attention mask preparation.

Two kinds of restriction can be applied to self‑attention: an attention mask
over ``(query, key)`` pairs and a key padding mask over key positions.  The
:class:`MaskGenerator` combines whatever is configured and whatever is passed
at call time into a single additive bias that the attention layers add to
their scores before the softmax.  Allowed pairs receive ``0`` and blocked
pairs ``-inf``; a pair is blocked as soon as any mask blocks it.
"""

from __future__ import annotations

from typing import Optional

import torch
from torch import nn

from .config import ModelConfig
from .exceptions import ShapeError


def to_blocked(mask: torch.Tensor) -> torch.Tensor:
  """Convert a mask to a boolean tensor that is ``True`` where blocked.

  Boolean masks are returned unchanged.  For numeric masks any non‑zero entry
  blocks, which covers both ``1``/``0`` masks and additive ``-inf``/``0``
  masks.
  """
  if mask.dtype == torch.bool:
    return mask
  return mask != 0


def create_attention_bias(
  seq_len: int,
  attention_mask: Optional[torch.Tensor] = None,
  key_padding_mask: Optional[torch.Tensor] = None,
  dtype: torch.dtype = torch.float32,
  device: Optional[torch.device] = None,
) -> torch.Tensor:
  """Combine an attention mask and a key padding mask into an additive bias.

  Parameters
  ----------
  seq_len:
      Length ``L`` of the sequence being attended over.
  attention_mask:
      Optional ``(L, L)`` mask, set where query ``i`` may not see key ``j``.
  key_padding_mask:
      Optional ``(L,)`` or ``(batch_size, L)`` mask, set on padded keys.
  dtype, device:
      Type and placement of the returned bias.

  Returns
  -------
  torch.Tensor
      ``(L, L)`` bias, or ``(batch_size, L, L)`` when the key padding mask is
      batched, holding ``0`` for allowed pairs and ``-inf`` for blocked ones.
  """
  blocked = torch.zeros(seq_len, seq_len, dtype=torch.bool, device=device)
  if attention_mask is not None:
    blocked = blocked | to_blocked(attention_mask).to(device=blocked.device)
  if key_padding_mask is not None:
    padding = to_blocked(key_padding_mask).to(device=blocked.device)
    # a padded key is hidden from every query: broadcast over the query axis
    blocked = blocked | padding.unsqueeze(-2)
  bias = torch.zeros(blocked.shape, dtype=dtype, device=blocked.device)
  return bias.masked_fill(blocked, float("-inf"))


class MaskGenerator(nn.Module):
  """Holds the configured masks and produces the bias for each forward pass.

  The configured masks are stored once as non‑persistent buffers so that
  they follow the model across devices; they are read, never modified, and
  the same bias tensor is shared by every encoder layer of a call.
  """

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    self.max_seq_len = config.src_seq_len
    self.register_buffer("attention_mask", config.attention_mask, persistent=False)
    self.register_buffer("key_padding_mask", config.key_padding_mask, persistent=False)

  def forward(
    self,
    seq_len: int,
    batch_size: int = 1,
    attention_mask: Optional[torch.Tensor] = None,
    key_padding_mask: Optional[torch.Tensor] = None,
    dtype: torch.dtype = torch.float32,
    device: Optional[torch.device] = None,
  ) -> torch.Tensor:
    """Build the additive bias for a batch of sequences of length ``seq_len``.

    Call‑time masks are combined with the configured ones.  Configured masks
    cover ``src_seq_len`` positions and are cut down to the first
    ``seq_len`` for shorter inputs.

    Raises
    ------
    ShapeError
        If a call‑time mask does not match ``seq_len`` or ``batch_size``.
    """
    if seq_len > self.max_seq_len:
      raise ShapeError(
        f"Sequence length {seq_len} exceeds src_seq_len ({self.max_seq_len})."
      )
    if attention_mask is not None and tuple(attention_mask.shape) != (seq_len, seq_len):
      raise ShapeError(
        f"attention_mask must have shape {(seq_len, seq_len)}, "
        f"got {tuple(attention_mask.shape)}."
      )
    if key_padding_mask is not None and tuple(key_padding_mask.shape) not in (
      (seq_len,),
      (batch_size, seq_len),
    ):
      raise ShapeError(
        f"key_padding_mask must have shape {(seq_len,)} or {(batch_size, seq_len)}, "
        f"got {tuple(key_padding_mask.shape)}."
      )

    if self.attention_mask is not None:
      configured = to_blocked(self.attention_mask[:seq_len, :seq_len])
      attention_mask = (
        configured if attention_mask is None else configured | to_blocked(attention_mask).to(configured.device)
      )
    if self.key_padding_mask is not None:
      configured = to_blocked(self.key_padding_mask[:seq_len])
      key_padding_mask = (
        configured if key_padding_mask is None else configured | to_blocked(key_padding_mask).to(configured.device)
      )

    return create_attention_bias(
      seq_len,
      attention_mask=attention_mask,
      key_padding_mask=key_padding_mask,
      dtype=dtype,
      device=device,
    )
