"""Docs builder — queue and sandboxed build pipeline for registry documentation."""

__version__ = "0.1.0"
