"""Multi-provider hotel search aggregation."""

__version__ = "0.1.0"
