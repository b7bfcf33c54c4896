"""Quiz markup validation, terminal quiz sessions and shareable tokens."""

__version__ = "0.1.0"
