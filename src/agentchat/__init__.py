"""Streaming multi-tenant agent chat backend."""

__version__ = "0.5.0"
