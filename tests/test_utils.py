"""Unit tests for the helper utilities."""

import torch

from bert_encoder.bert_model import BertModel
from bert_encoder.utils import get_torch_accelerator


def test_accelerator_is_a_usable_device() -> None:
  device = get_torch_accelerator()
  assert isinstance(device, torch.device)
  model = BertModel.create(
    src_vocab_size=20, src_seq_len=4, num_encoder_layers=1, d_model=8, num_heads=2, dropout=0.0
  ).to(device)
  model.eval()
  output = model(torch.tensor([1, 2, 3], device=device))
  assert output.last_hidden_state.shape == (3, 8)
