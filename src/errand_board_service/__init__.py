"""Errand board service: task lifecycle, settlement and ratings."""

__version__ = "0.1.0"
