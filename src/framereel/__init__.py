"""framereel: interval frame extraction and per-frame AI clip generation."""

__version__ = "0.1.0"
