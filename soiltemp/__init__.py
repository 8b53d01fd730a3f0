"""Soil temperature retrieval, validation and synchronization."""

__version__ = "1.0.0"
