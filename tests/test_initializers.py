"""Unit tests for the injected initialization strategies."""

import torch

from bert_encoder.bert_model import BertModel
from bert_encoder.config import ModelConfig
from bert_encoder.heads import MaskedLanguageModelHead
from bert_encoder.initializers import NormalInitialization, XavierInitialization


def _config() -> ModelConfig:
  return ModelConfig(
    src_vocab_size=500, src_seq_len=8, num_encoder_layers=1, d_model=64, num_heads=4
  )


def test_xavier_is_the_default() -> None:
  model = BertModel(_config())
  query = model.encoder.layers[0].attention.query
  bound = (6.0 / (64 + 64)) ** 0.5
  assert query.weight.abs().max() <= bound
  assert torch.all(query.bias == 0.0)
  norm = model.encoder.layers[0].norm1
  assert torch.all(norm.weight == 1.0) and torch.all(norm.bias == 0.0)


def test_normal_initialization_is_injected() -> None:
  torch.manual_seed(0)
  model = BertModel(_config(), initializer=NormalInitialization(std=0.02))
  weight = model.embeddings.word_embeddings.weight
  assert abs(weight.std().item() - 0.02) < 0.002
  assert torch.all(model.encoder.layers[0].feed_forward.intermediate.bias == 0.0)


def test_xavier_gain_scales_bound() -> None:
  model = BertModel(_config(), initializer=XavierInitialization(gain=0.5))
  bound = 0.5 * (6.0 / (64 + 64)) ** 0.5
  assert model.encoder.layers[0].attention.key.weight.abs().max() <= bound


def test_attached_head_uses_model_initializer_and_keeps_tied_weights() -> None:
  torch.manual_seed(0)
  config = _config()
  model = BertModel(config, initializer=NormalInitialization(std=0.02))
  embedding = model.embeddings.word_embeddings.weight
  before = embedding.detach().clone()

  head = MaskedLanguageModelHead(config, embedding)
  model.attach_head(head)

  assert abs(head.dense.weight.std().item() - 0.02) < 0.002
  assert torch.all(head.dense.bias == 0.0)
  assert torch.all(head.layer_norm.weight == 1.0)
  assert head.decoder.weight is embedding
  assert torch.equal(embedding, before)
