"""pipectl — setup and verification CLI for an event pipeline."""

__version__ = "0.1.0"
