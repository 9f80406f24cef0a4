"""Top-level package for the BERT encoder stack.

This module exposes the core classes used throughout the project.  Importing
from :mod:`bert_encoder` gives access to the configuration, the model, the
pluggable heads and initializers, and checkpoint I/O without referencing
deeply nested modules.
"""

from .config import ModelConfig
from .exceptions import ConfigError, FormatError, ShapeError
from .embeddings import BertEmbeddings, LearnedPositionalEncoding, SinusoidalPositionalEncoding
from .masks import MaskGenerator, create_attention_bias
from .multi_head_attention import MultiHeadSelfAttention
from .feed_forward import FeedForwardSublayer
from .transformer_encoder_layer import TransformerEncoderLayer
from .bert_model import BertEncoder, BertModel, BertOutput
from .heads import HeadOutput, MaskedLanguageModelHead, OutputHead, SequenceClassificationHead
from .initializers import Initializer, NormalInitialization, XavierInitialization
from .persistence import load_model, save_model

__all__ = [
  "ModelConfig",
  "ConfigError",
  "FormatError",
  "ShapeError",
  "BertEmbeddings",
  "LearnedPositionalEncoding",
  "SinusoidalPositionalEncoding",
  "MaskGenerator",
  "create_attention_bias",
  "MultiHeadSelfAttention",
  "FeedForwardSublayer",
  "TransformerEncoderLayer",
  "BertEncoder",
  "BertModel",
  "BertOutput",
  "HeadOutput",
  "MaskedLanguageModelHead",
  "OutputHead",
  "SequenceClassificationHead",
  "Initializer",
  "NormalInitialization",
  "XavierInitialization",
  "load_model",
  "save_model",
]
