"""Motorcycle jacket catalog harvester and virtual try-on service."""

__version__ = "0.1.0"
