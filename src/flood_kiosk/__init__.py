"""Flood kiosk simulation, scoring and cross-surface synchronization engine."""

__version__ = "0.1.0"
