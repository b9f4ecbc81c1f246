"""Per-route token bucket admission control served over FastAPI."""

__version__ = "0.1.0"
