"""Quarry - local hybrid (keyword + semantic) search for personal knowledge."""

__version__ = "0.1.0"
