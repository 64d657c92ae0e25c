"""Strongbox: a local encrypted secrets vault."""

__version__ = "0.1.0"
