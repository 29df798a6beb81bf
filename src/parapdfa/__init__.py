# src/parapdfa/__init__.py
"""Parallel conversion of scanned documents into searchable PDF/A files."""

__version__ = "1.0.0"
