"""Quorum consensus engine for tasks answered by mutually distrusting operators."""

__version__ = "0.1.0"
