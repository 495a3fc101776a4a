"""Open-data property sync, signals and market aggregates."""

__version__ = "0.1.0"
