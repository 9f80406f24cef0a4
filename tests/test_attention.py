"""Unit tests for the multi‑head self‑attention implementation."""

import torch

from bert_encoder.config import ModelConfig
from bert_encoder.masks import create_attention_bias
from bert_encoder.multi_head_attention import MultiHeadSelfAttention


def _config(dropout: float = 0.0) -> ModelConfig:
  return ModelConfig(
    src_vocab_size=100,
    src_seq_len=10,
    num_encoder_layers=1,
    d_model=64,
    num_heads=8,
    dropout=dropout,
  )


def test_attention_output_shape_and_probs() -> None:
  # Use dropout 0 to simplify the test
  config = _config()
  attn = MultiHeadSelfAttention(config)
  attn.eval()
  batch_size, seq_len = 2, 5
  hidden_states = torch.randn(batch_size, seq_len, config.d_model)
  output, probs = attn(hidden_states, None)
  assert output.shape == (batch_size, seq_len, config.d_model)
  assert probs.shape == (batch_size, config.num_heads, seq_len, seq_len)
  # Sum of probabilities along last dimension should be 1 (due to softmax)
  prob_sums = probs.sum(dim=-1)
  ones = torch.ones_like(prob_sums)
  assert torch.allclose(prob_sums, ones, atol=1e-6)


def test_zero_bias_matches_no_bias() -> None:
  attn = MultiHeadSelfAttention(_config())
  attn.eval()
  hidden_states = torch.randn(1, 5, 64)
  out_a, probs_a = attn(hidden_states, None)
  out_b, probs_b = attn(hidden_states, create_attention_bias(5))
  assert torch.allclose(out_a, out_b)
  assert torch.allclose(probs_a, probs_b)


def test_masked_keys_get_exactly_zero_weight() -> None:
  attn = MultiHeadSelfAttention(_config())
  attn.eval()
  seq_len = 6
  causal = torch.triu(torch.ones(seq_len, seq_len, dtype=torch.bool), diagonal=1)
  padding = torch.tensor([False, False, False, False, True, True])
  bias = create_attention_bias(seq_len, causal, padding)
  _, probs = attn(torch.randn(3, seq_len, 64), bias)

  blocked = causal | padding.unsqueeze(0)
  assert torch.all(probs[..., blocked] == 0.0)
  assert torch.allclose(probs.sum(dim=-1), torch.ones(3, 8, seq_len), atol=1e-6)


def test_fully_masked_query_gets_zero_attention() -> None:
  attn = MultiHeadSelfAttention(_config())
  attn.eval()
  with torch.no_grad():
    attn.out_proj.bias.fill_(0.5)
  seq_len = 4
  attention_mask = torch.zeros(seq_len, seq_len, dtype=torch.bool)
  attention_mask[2] = True  # query 2 may see nothing
  bias = create_attention_bias(seq_len, attention_mask)
  output, probs = attn(torch.randn(2, seq_len, 64), bias)

  assert not torch.isnan(output).any()
  assert not torch.isnan(probs).any()
  assert torch.all(probs[:, :, 2] == 0.0)
  row_sums = probs.sum(dim=-1)
  assert torch.allclose(row_sums[:, :, [0, 1, 3]], torch.ones(2, 8, 3), atol=1e-6)
  assert torch.all(output[:, 2] == 0.0)
  assert not torch.all(output[:, [0, 1, 3]] == 0.0)


def test_fully_padded_example_does_not_affect_others() -> None:
  attn = MultiHeadSelfAttention(_config())
  attn.eval()
  hidden_states = torch.randn(2, 3, 64)
  padding = torch.tensor([[True, True, True], [False, False, False]])
  output, probs = attn(hidden_states, create_attention_bias(3, key_padding_mask=padding))
  assert torch.all(probs[0] == 0.0)
  assert torch.all(output[0] == 0.0)
  reference, _ = attn(hidden_states[1:], None)
  assert torch.allclose(output[1], reference[0], atol=1e-6)


def test_dropout_only_in_training_mode() -> None:
  attn = MultiHeadSelfAttention(_config(dropout=0.5))
  hidden_states = torch.randn(2, 5, 64)

  attn.eval()
  out_a, _ = attn(hidden_states)
  out_b, _ = attn(hidden_states)
  assert torch.equal(out_a, out_b)

  attn.train()
  torch.manual_seed(0)
  out_c, _ = attn(hidden_states)
  assert not torch.allclose(out_a, out_c)


def test_matches_torch_multihead_attention() -> None:
  config = _config()
  attn = MultiHeadSelfAttention(config)
  attn.eval()
  reference = torch.nn.MultiheadAttention(64, 8, dropout=0.0, batch_first=True)
  reference.eval()
  with torch.no_grad():
    reference.in_proj_weight.copy_(
      torch.cat([attn.query.weight, attn.key.weight, attn.value.weight])
    )
    reference.in_proj_bias.copy_(torch.cat([attn.query.bias, attn.key.bias, attn.value.bias]))
    reference.out_proj.weight.copy_(attn.out_proj.weight)
    reference.out_proj.bias.copy_(attn.out_proj.bias)

  hidden_states = torch.randn(2, 5, 64)
  causal = torch.triu(torch.ones(5, 5, dtype=torch.bool), diagonal=1)
  with torch.no_grad():
    output, probs = attn(hidden_states, create_attention_bias(5, causal))
    expected, expected_probs = reference(
      hidden_states,
      hidden_states,
      hidden_states,
      attn_mask=causal,
      need_weights=True,
      average_attn_weights=False,
    )
  assert torch.allclose(output, expected, atol=1e-5)
  assert torch.allclose(probs, expected_probs, atol=1e-6)
