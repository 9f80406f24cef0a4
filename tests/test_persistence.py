"""Unit tests for saving and loading model parameters."""

import pytest
import torch

from bert_encoder.bert_model import BertModel
from bert_encoder.config import ModelConfig
from bert_encoder.exceptions import FormatError
from bert_encoder.heads import SequenceClassificationHead
from bert_encoder.persistence import load_model, save_model


def _model(**kwargs) -> BertModel:
  params = dict(
    src_vocab_size=100,
    src_seq_len=12,
    num_encoder_layers=2,
    d_model=16,
    num_heads=4,
    dropout=0.0,
  )
  params.update(kwargs)
  model = BertModel(ModelConfig(**params))
  model.eval()
  return model


def test_round_trip_reproduces_outputs(tmp_path) -> None:
  source = _model()
  path = tmp_path / "checkpoints" / "model.pt"
  save_model(source, path)
  assert path.exists()
  assert not (tmp_path / "checkpoints" / "model.pt.tmp").exists()

  target = _model()
  input_ids = torch.randint(0, 100, (2, 12))
  with torch.no_grad():
    assert not torch.allclose(source(input_ids).last_hidden_state, target(input_ids).last_hidden_state)
    load_model(target, path)
    assert torch.equal(source(input_ids).last_hidden_state, target(input_ids).last_hidden_state)


def test_round_trip_includes_output_head(tmp_path) -> None:
  config = ModelConfig(src_vocab_size=100, src_seq_len=12, num_encoder_layers=1, d_model=16, num_heads=4)
  source = BertModel(config, output_head=SequenceClassificationHead(config))
  path = tmp_path / "model.pt"
  save_model(source, str(path))
  target = BertModel(config, output_head=SequenceClassificationHead(config))
  load_model(target, str(path))
  assert torch.equal(
    source.output_head.classifier.weight, target.output_head.classifier.weight
  )


def test_mismatched_width_raises_format_error_and_keeps_parameters(tmp_path) -> None:
  path = tmp_path / "model.pt"
  save_model(_model(d_model=16), path)
  live = _model(d_model=8, num_heads=2)
  before = live.serialize()
  with pytest.raises(FormatError):
    load_model(live, path)
  after = live.serialize()
  assert before.keys() == after.keys()
  assert all(torch.equal(before[name], after[name]) for name in before)


def test_mismatched_depth_raises_format_error(tmp_path) -> None:
  path = tmp_path / "model.pt"
  save_model(_model(num_encoder_layers=2), path)
  with pytest.raises(FormatError):
    load_model(_model(num_encoder_layers=3), path)


def test_missing_head_parameters_raise_format_error(tmp_path) -> None:
  config = ModelConfig(src_vocab_size=100, src_seq_len=12, num_encoder_layers=1, d_model=16, num_heads=4)
  path = tmp_path / "model.pt"
  save_model(BertModel(config), path)
  live = BertModel(config, output_head=SequenceClassificationHead(config))
  before = live.serialize()
  with pytest.raises(FormatError):
    load_model(live, path)
  assert all(torch.equal(before[name], live.serialize()[name]) for name in before)


def test_unreadable_path_raises_io_error(tmp_path) -> None:
  with pytest.raises(IOError):
    load_model(_model(), tmp_path / "does_not_exist.pt")


def test_unrelated_file_raises_format_error(tmp_path) -> None:
  path = tmp_path / "garbage.pt"
  path.write_bytes(b"this is not a checkpoint")
  with pytest.raises(FormatError):
    load_model(_model(), path)


def test_checkpoint_without_header_raises_format_error(tmp_path) -> None:
  path = tmp_path / "weights_only.pt"
  model = _model()
  torch.save(model.state_dict(), path)
  with pytest.raises(FormatError):
    load_model(model, path)


def test_truncated_checkpoint_raises_format_error(tmp_path) -> None:
  path = tmp_path / "model.pt"
  model = _model()
  save_model(model, path)
  path.write_bytes(path.read_bytes()[:100])
  before = model.serialize()
  with pytest.raises(FormatError):
    load_model(model, path)
  assert all(torch.equal(before[name], model.serialize()[name]) for name in before)


@pytest.mark.parametrize(
  "content",
  [b"", b"this is not a checkpoint", b"\x80\x02]q\x00.", b"PK\x03\x04garbage"],
)
def test_foreign_files_raise_format_error_only(tmp_path, content) -> None:
  path = tmp_path / "foreign.pt"
  path.write_bytes(content)
  with pytest.raises(FormatError):
    load_model(_model(), path)
