"""Demonstration of training the BERT encoder on a toy dataset.

This script tokenises a handful of sentences and trains a small encoder
with a masked language modelling (MLM) head attached.  The goal is not
to train a state‑of‑the‑art model, but rather to illustrate how the
encoder, the pluggable head and checkpointing fit together.  Training
progress and loss values are logged, and the resulting parameters are
saved below ``DATA_DIR/results``.

Usage
-----
Run this script with ``python training_demo.py`` from the repository
root.  Ensure that dependencies are installed and that PyTorch can
locate a GPU if available.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Tuple

import torch
from torch.utils.data import Dataset, DataLoader
from transformers import BertTokenizer
from dotenv import load_dotenv

from bert_encoder.bert_model import BertModel
from bert_encoder.config import ModelConfig
from bert_encoder.heads import MaskedLanguageModelHead
from bert_encoder.initializers import NormalInitialization
from bert_encoder.persistence import save_model
from bert_encoder.utils import get_torch_accelerator


def setup_logging() -> None:
  logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
  )


class ToyMLMDataset(Dataset):
  """A toy dataset for demonstrating masked language modelling.

  During initialisation the dataset tokenises the sentences, pads them
  to ``max_length`` and applies random masking for the MLM task.
  """

  def __init__(
    self,
    tokenizer: BertTokenizer,
    sentences: List[str],
    max_length: int = 32,
    mlm_probability: float = 0.15,
  ) -> None:
    self.tokenizer = tokenizer
    self.max_length = max_length
    self.mlm_probability = mlm_probability

    # Preprocess all examples
    self.examples = []
    for sentence in sentences:
      enc = tokenizer(
        sentence,
        truncation=True,
        padding="max_length",
        max_length=max_length,
        return_tensors="pt",
      )
      input_ids = enc["input_ids"][0]
      key_padding_mask = enc["attention_mask"][0] == 0
      masked_input_ids, mlm_labels = self.mask_tokens(input_ids.clone())
      self.examples.append(
        {
          "input_ids": masked_input_ids,
          "key_padding_mask": key_padding_mask,
          "labels": mlm_labels,
        }
      )

  def __len__(self) -> int:
    return len(self.examples)

  def __getitem__(self, idx: int) -> dict:
    return self.examples[idx]

  def mask_tokens(self, inputs: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    """Prepare masked tokens inputs/labels for masked language modelling.

    ``-100`` tokens are ignored in the loss.  Special tokens are never
    masked.  15% of input tokens are selected for masking: 80% are
    replaced with [MASK], 10% with a random token and 10% are kept
    unchanged.
    """
    labels = inputs.clone()

    probability_matrix = torch.full(labels.shape, self.mlm_probability)
    special_tokens_mask = self.tokenizer.get_special_tokens_mask(
      labels.tolist(), already_has_special_tokens=True
    )
    probability_matrix = probability_matrix.masked_fill(
      torch.tensor(special_tokens_mask, dtype=torch.bool), 0.0
    )
    masked_indices = torch.bernoulli(probability_matrix).bool()
    labels[~masked_indices] = -100  # Only compute loss on masked tokens

    # 80% of the time, replace masked input tokens with [MASK]
    indices_replaced = (
      torch.bernoulli(torch.full(labels.shape, 0.8)).bool() & masked_indices
    )
    inputs[indices_replaced] = self.tokenizer.mask_token_id

    # 10% of the time, replace masked input tokens with random token
    indices_random = (
      torch.bernoulli(torch.full(labels.shape, 0.5)).bool()
      & masked_indices
      & ~indices_replaced
    )
    random_words = torch.randint(self.tokenizer.vocab_size, labels.shape, dtype=torch.long)
    inputs[indices_random] = random_words[indices_random]

    # The rest 10% of the time, keep the masked input tokens unchanged
    return inputs, labels


def main() -> None:
  setup_logging()
  logger = logging.getLogger(__name__)
  load_dotenv()
  data_dir = Path(os.getenv("DATA_DIR", "."))
  logger.info(f"Using DATA_DIR at {data_dir.resolve()}")

  tokenizer = BertTokenizer.from_pretrained("bert-base-uncased")
  max_length = 32
  config = ModelConfig(
    src_vocab_size=tokenizer.vocab_size,
    src_seq_len=max_length,
    num_encoder_layers=2,
    d_model=128,
    num_heads=4,
    dropout=0.1,
  )

  sentences: List[str] = [
    "The quick brown fox jumps over the lazy dog",
    "Transformers are revolutionary models",
    "My cat loves to sleep",
    "Artificial intelligence is advancing rapidly",
  ]
  # Duplicate the dataset to have more examples
  sentences = sentences * 4

  dataset = ToyMLMDataset(tokenizer, sentences, max_length=max_length)
  dataloader = DataLoader(dataset, batch_size=2, shuffle=True)

  # Instantiate model and tie the MLM decoder to the token embeddings
  model = BertModel(config, initializer=NormalInitialization(std=0.02))
  model.attach_head(
    MaskedLanguageModelHead(config, model.embeddings.word_embeddings.weight)
  )

  device = get_torch_accelerator()
  model.to(device)
  model.train()

  optimizer = torch.optim.AdamW(model.parameters(), lr=5e-4)

  num_epochs = 2
  logger.info(f"Starting training for {num_epochs} epochs on {len(dataset)} examples")
  for epoch in range(num_epochs):
    total_loss = 0.0
    for batch in dataloader:
      optimizer.zero_grad()
      output = model(
        batch["input_ids"].to(device),
        key_padding_mask=batch["key_padding_mask"].to(device),
        labels=batch["labels"].to(device),
      )
      loss = output.head_output.loss
      loss.backward()
      optimizer.step()
      total_loss += loss.item()
    avg_loss = total_loss / len(dataloader)
    logger.info(f"Epoch {epoch + 1}/{num_epochs}: average loss = {avg_loss:.4f}")

  model_path = data_dir / "results" / "toy_encoder_mlm.pt"
  save_model(model, model_path)
  logger.info(f"Trained model saved to {model_path}")


if __name__ == "__main__":
  main()
