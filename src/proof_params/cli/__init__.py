"""CLI helpers exposed for other modules."""

from .helpers import configure_logging, console, format_bytes

__all__ = ["configure_logging", "console", "format_bytes"]
