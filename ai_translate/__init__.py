"""AI translation service for localized structured content."""

__version__ = "0.1.0"
