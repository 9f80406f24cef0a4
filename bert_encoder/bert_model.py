"""Core BERT encoder implementation.

This module defines the encoder stack and the high level model that
assembles the embeddings, the mask generator, the encoder and an optional
output head.  The model maps token ids to contextualised hidden states of
width ``d_model``; what is computed from those states is left to the head
plugged in at construction time.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Tuple

import torch
from torch import nn

from .base import EncoderModule
from .config import ModelConfig
from .embeddings import BertEmbeddings
from .exceptions import ShapeError
from .heads import HeadOutput, OutputHead
from .initializers import Initializer, XavierInitialization
from .masks import MaskGenerator
from .transformer_encoder_layer import TransformerEncoderLayer

logger = logging.getLogger(__name__)


class BertOutput(NamedTuple):
  last_hidden_state: torch.Tensor
  hidden_states: Optional[List[torch.Tensor]] = None
  attentions: Optional[List[torch.Tensor]] = None
  head_output: Optional[HeadOutput] = None


class BertEncoder(EncoderModule):
  """Stack of transformer encoder layers.

  Each layer owns its own parameters; nothing is shared between layers.

  Parameters
  ----------
  config:
      Model configuration specifying the number of layers and other
      hyper‑parameters.
  """

  def __init__(self, config: ModelConfig) -> None:
    super().__init__()
    self.d_model = config.d_model
    self.layers = nn.ModuleList(
      [TransformerEncoderLayer(config) for _ in range(config.num_encoder_layers)]
    )

  def forward(
    self,
    hidden_states: torch.Tensor,
    attention_bias: Optional[torch.Tensor] = None,
    output_hidden_states: bool = False,
    output_attentions: bool = False,
  ) -> Tuple[torch.Tensor, Optional[List[torch.Tensor]], Optional[List[torch.Tensor]]]:
    """Apply the encoder stack to the hidden states.

    Parameters
    ----------
    hidden_states:
        Input tensor of shape ``(batch_size, seq_len, d_model)``.
    attention_bias:
        Optional additive mask bias, passed unchanged to every layer.
    output_hidden_states:
        Whether to return a list of all hidden states for every layer.
    output_attentions:
        Whether to return attention probabilities for each layer.

    Returns
    -------
    Tuple containing:
        - last hidden states of shape ``(batch_size, seq_len, d_model)``,
        - list of hidden states from each layer if requested,
        - list of attention probabilities if requested.
    """
    if hidden_states.dim() != 3 or hidden_states.size(-1) != self.d_model:
      raise ShapeError(
        f"hidden_states must have shape (batch_size, seq_len, {self.d_model}), "
        f"got {tuple(hidden_states.shape)}."
      )
    all_hidden_states: Optional[List[torch.Tensor]] = (
      [] if output_hidden_states else None
    )
    all_attentions: Optional[List[torch.Tensor]] = [] if output_attentions else None
    for layer in self.layers:
      if all_hidden_states is not None:
        # Save the current hidden state prior to the layer
        all_hidden_states.append(hidden_states)

      hidden_states, attn_probs = layer(hidden_states, attention_bias)

      if all_attentions is not None:
        all_attentions.append(attn_probs)

    # append the final hidden state (output of the last layer)
    if all_hidden_states is not None:
      all_hidden_states.append(hidden_states)

    return hidden_states, all_hidden_states, all_attentions


class BertModel(EncoderModule):
  """BERT encoder with an optional, externally supplied output head.

  Parameters
  ----------
  config:
      Validated model configuration.
  output_head:
      Optional task head applied to the final hidden states.  It can also be
      attached later with :meth:`attach_head`, e.g. to tie an MLM decoder to
      ``embeddings.word_embeddings.weight``.
  initializer:
      Strategy used to initialise every parameter, including those of
      ``output_head``.  Defaults to :class:`XavierInitialization`.
  """

  def __init__(
    self,
    config: ModelConfig,
    output_head: Optional[OutputHead] = None,
    initializer: Optional[Initializer] = None,
  ) -> None:
    super().__init__()
    self.config = config
    self.embeddings = BertEmbeddings(config)
    self.mask_generator = MaskGenerator(config)
    self.encoder = BertEncoder(config)
    self.output_head = output_head

    self.initializer = initializer if initializer is not None else XavierInitialization()
    self.apply(self.initializer)
    logger.info(
      f"Built encoder with {config.num_encoder_layers} layers, "
      f"d_model={config.d_model}, num_heads={config.num_heads}: "
      f"{self.parameter_count():,} parameters"
    )

  @classmethod
  def create(
    cls,
    src_vocab_size: int,
    src_seq_len: int,
    num_encoder_layers: int = 12,
    d_model: int = 512,
    num_heads: int = 8,
    dropout: float = 0.1,
    attention_mask: Optional[torch.Tensor] = None,
    key_padding_mask: Optional[torch.Tensor] = None,
    *,
    output_head: Optional[OutputHead] = None,
    initializer: Optional[Initializer] = None,
    **config_kwargs,
  ) -> "BertModel":
    """Validate the hyper‑parameters and build a model in one call."""
    config = ModelConfig(
      src_vocab_size=src_vocab_size,
      src_seq_len=src_seq_len,
      num_encoder_layers=num_encoder_layers,
      d_model=d_model,
      num_heads=num_heads,
      dropout=dropout,
      attention_mask=attention_mask,
      key_padding_mask=key_padding_mask,
      **config_kwargs,
    )
    return cls(config, output_head=output_head, initializer=initializer)

  def attach_head(self, output_head: Optional[OutputHead]) -> None:
    """Replace the output head (``None`` removes it).

    The head is initialised with the model's initializer, except for modules
    whose weights are already part of the model (a decoder tied to the token
    embeddings keeps the embedding values).
    """
    if output_head is not None:
      owned = {id(p) for name, p in self.named_parameters() if not name.startswith("output_head.")}
      for module in output_head.modules():
        if not any(id(p) in owned for p in module.parameters(recurse=False)):
          self.initializer(module)
    self.output_head = output_head

  def forward(
    self,
    input_ids: torch.Tensor,
    attention_mask: Optional[torch.Tensor] = None,
    key_padding_mask: Optional[torch.Tensor] = None,
    labels: Optional[torch.Tensor] = None,
    output_hidden_states: bool = False,
    output_attentions: bool = False,
  ) -> BertOutput:
    """Perform forward pass through the encoder.

    Parameters
    ----------
    input_ids:
        Tensor of shape ``(batch_size, seq_len)`` or ``(seq_len,)``
        containing token IDs, with ``seq_len <= src_seq_len``.  For 1‑D
        input every returned tensor has its batch dimension removed.
    attention_mask:
        Optional ``(seq_len, seq_len)`` mask, combined with the configured
        one.  Set entries block a ``(query, key)`` pair.
    key_padding_mask:
        Optional ``(seq_len,)`` or ``(batch_size, seq_len)`` mask, set on
        padding positions, combined with the configured one.  If ``None``
        and ``pad_token_id`` is configured, it is derived from ``input_ids``.
    labels:
        Optional targets forwarded to the output head.
    output_hidden_states:
        Whether to return the embedding output and every layer's output.
    output_attentions:
        Whether to return every layer's attention probabilities.

    Returns
    -------
    BertOutput
        ``last_hidden_state`` of shape ``(batch_size, seq_len, d_model)``,
        the optional lists and the head output (``None`` without a head).

    Notes
    -----
    In training mode dropout draws from PyTorch's global random generator,
    which concurrent training‑mode calls share.  Seed it with
    ``torch.manual_seed`` for reproducible runs, or call ``eval()``, where
    every dropout is the identity and the pass reads parameters only.
    """
    unbatched = input_ids.dim() == 1
    if unbatched:
      input_ids = input_ids.unsqueeze(0)
    if input_ids.dim() != 2:
      raise ShapeError(
        f"input_ids must be 1-D or 2-D, got shape {tuple(input_ids.shape)}."
      )
    batch_size, seq_len = input_ids.shape
    if labels is not None and self.output_head is None:
      raise ValueError("labels were given but the model has no output head.")

    if key_padding_mask is None and self.config.pad_token_id is not None:
      # Derive the mask from input_ids: pad tokens have id equal to pad_token_id
      key_padding_mask = input_ids == self.config.pad_token_id

    embedding_output = self.embeddings(input_ids)
    attention_bias = self.mask_generator(
      seq_len,
      batch_size=batch_size,
      attention_mask=attention_mask,
      key_padding_mask=key_padding_mask,
      dtype=embedding_output.dtype,
      device=embedding_output.device,
    )
    sequence_output, all_hidden_states, all_attentions = self.encoder(
      embedding_output,
      attention_bias=attention_bias,
      output_hidden_states=output_hidden_states,
      output_attentions=output_attentions,
    )

    head_output = None
    if self.output_head is not None:
      head_output = self.output_head(sequence_output, labels)

    if unbatched:
      sequence_output = sequence_output[0]
      if all_hidden_states is not None:
        all_hidden_states = [h[0] for h in all_hidden_states]
      if all_attentions is not None:
        all_attentions = [a[0] for a in all_attentions]
      if head_output is not None:
        head_output = HeadOutput(head_output.logits[0], head_output.loss)
    return BertOutput(sequence_output, all_hidden_states, all_attentions, head_output)
