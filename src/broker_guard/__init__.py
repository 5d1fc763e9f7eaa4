"""Broker Guard: role-based address access control for an embedded message broker."""

__version__ = "0.1.0"
