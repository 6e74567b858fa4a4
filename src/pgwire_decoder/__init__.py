"""Streaming decoder for PostgreSQL backend wire messages."""

__version__ = "0.1.0"
