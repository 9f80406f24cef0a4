"""Demonstration of running inference with the BERT encoder.

This script builds a small encoder, runs a padded batch through it, saves
the parameters and reloads them into a freshly initialised model.  The
difference between the two models' outputs is reported; it should be zero.

Usage
-----
Run this script with ``python inference_demo.py`` from the repository root.
Checkpoints are written below ``DATA_DIR`` (read from the environment or a
``.env`` file, defaulting to the current directory).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import torch
from dotenv import load_dotenv

from bert_encoder.bert_model import BertModel
from bert_encoder.config import ModelConfig
from bert_encoder.persistence import load_model, save_model
from bert_encoder.utils import get_torch_accelerator


def setup_logging() -> None:
  logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
  )


def main() -> None:
  setup_logging()
  logger = logging.getLogger(__name__)
  # Load environment variables
  load_dotenv()
  data_dir = Path(os.getenv("DATA_DIR", "."))
  logger.info(f"Using DATA_DIR at {data_dir.resolve()}")

  config = ModelConfig(
    src_vocab_size=1000,
    src_seq_len=8,
    num_encoder_layers=2,
    d_model=16,
    num_heads=4,
    dropout=0.0,
  )
  device = get_torch_accelerator()
  model = BertModel(config).to(device)
  model.eval()

  # Two sequences; the second one is padded after four tokens
  input_ids = torch.tensor(
    [[1, 2, 3, 4, 5, 6, 7, 8], [9, 10, 11, 12, 0, 0, 0, 0]], device=device
  )
  key_padding_mask = torch.tensor(
    [[False] * 8, [False] * 4 + [True] * 4], device=device
  )

  with torch.no_grad():
    output = model(input_ids, key_padding_mask=key_padding_mask, output_attentions=True)
  logger.info(f"Hidden states shape: {tuple(output.last_hidden_state.shape)}")
  row_sums = output.attentions[-1].sum(dim=-1)
  logger.info(f"Attention row sums range: [{row_sums.min():.4f}, {row_sums.max():.4f}]")

  # Save, reload into a fresh model and compare
  model_path = data_dir / "results" / "encoder.pt"
  save_model(model, model_path)
  restored = BertModel(config).to(device)
  restored.eval()
  load_model(restored, model_path)

  with torch.no_grad():
    restored_output = restored(input_ids, key_padding_mask=key_padding_mask)
  diff = (restored_output.last_hidden_state - output.last_hidden_state).abs().max().item()
  logger.info(f"Max absolute difference after reload: {diff:.6f}")


if __name__ == "__main__":
  main()
