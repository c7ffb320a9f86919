"""structlog setup for the agentflow CLI.

Events go to stderr so the JSON that commands print on stdout stays
parseable. Modules log through ``structlog.get_logger(__name__)``.
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Route structlog events to stderr at ``log_level``.

    Args:
        log_level: Level name, any case. Unknown names fall back to INFO
        json_output: One JSON object per line; False uses the console renderer
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # --log-level is applied after modules have created their loggers
        cache_logger_on_first_use=False,
    )
