"""Local-first GitHub issue search across multiple repositories."""

__version__ = "0.1.0"
