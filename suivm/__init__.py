"""sui version manager."""

__version__ = "0.2.0"
