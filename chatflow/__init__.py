"""Client-side session controller for multi-stage workflow chat services."""

__version__ = "1.0.0"
