"""Core of an edge cache node: configuration, lookup, validation, fetching and metrics."""

__version__ = "0.1.0"

__all__ = [
    "backend",
    "config",
    "eventlog",
    "events",
    "finder",
    "metrics",
    "mock",
    "models",
    "observability",
    "validator",
]