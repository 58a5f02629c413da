"""Incremental importer for handwritten-note archives."""

__version__ = "0.4.0"
