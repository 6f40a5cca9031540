"""Authenticated proxy in front of third-party image generation providers."""

__version__ = "1.0.0"
