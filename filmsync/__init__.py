"""Offline-first synchronization engine for group-scoped movie collections."""

__version__ = "0.1.0"
