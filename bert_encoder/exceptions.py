"""Exception types raised by the encoder.

Token ids outside the vocabulary raise the built-in :class:`IndexError` and
unreadable or unwritable checkpoint paths raise :class:`OSError`.  The
classes below cover the remaining failure modes.
"""

from __future__ import annotations


class ConfigError(ValueError):
  """Invalid or inconsistent hyper‑parameters at construction time."""


class ShapeError(ValueError):
  """An input or mask tensor does not match the configured dimensions."""


class FormatError(ValueError):
  """A saved checkpoint does not match the live model's configuration."""
