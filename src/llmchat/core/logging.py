"""structlog setup for the CLI.

Log lines go to stderr so rendered answers on stdout stay pipeable.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "WARNING") -> None:
    """Configure structlog with a level filter and key-value output on stderr.

    Args:
        level: Standard logging level name (DEBUG, INFO, WARNING, ERROR)
    """
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.WARNING)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
