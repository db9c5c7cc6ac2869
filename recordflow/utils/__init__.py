"""
Utilities package for recordflow.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from recordflow.utils.logging import JsonFormatter, configure_logging, get_logger

__all__ = [
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
