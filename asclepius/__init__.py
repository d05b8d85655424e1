"""Asclepius skin lesion classifier service."""

__version__ = "1.0.0"
