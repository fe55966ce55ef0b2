"""Dependency-aware batched mutation engine for layered biological-network data."""

__version__ = "0.1.0"
