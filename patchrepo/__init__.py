"""Patch Repository - define, validate, persist and audit binary patch sets."""

__version__ = "1.0.0"
