"""structlog configuration module."""

import logging
import sys

import structlog

# Third-party loggers that are chatty at INFO (HTTP request lines, SDK notices)
_NOISY_LOGGERS = ("httpx", "httpcore", "google_genai", "hpack")


def setup_logging(debug: bool = False) -> None:
    """
    Configure structlog and stdlib logging.

    In debug mode: colored, human-readable console output.
    In production mode: JSON output for log aggregation.

    Args:
        debug: If True, use ConsoleRenderer; otherwise use JSONRenderer.
    """
    level = logging.DEBUG if debug else logging.INFO

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,  # request_id, method, path, identity
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # stdlib loggers (uvicorn, SDKs) share stdout with structlog output.
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)
