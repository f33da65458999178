"""Keeps ads.txt files in sync with the remote sources listed in a YAML configuration."""

__version__ = "0.1.0"
