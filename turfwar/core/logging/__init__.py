"""
turfwar logging: structured records bound to the command that produced them.
"""

from turfwar.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "ContextFilter",
    "JSONFormatter",
    "LogContext",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
]
