"""Logging configuration and HTTP logging hooks."""

import logging
import sys
import time

import httpx
import structlog

from fcm_dispatch.config import Settings, get_settings

logger = structlog.get_logger(__name__)

# Transport libraries that duplicate the request events below at INFO
HTTP_LIBRARY_LOGGERS = ("httpx", "httpcore")


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure structured logging.

    The httpx and httpcore loggers are held at WARNING unless LOG_LEVEL is
    DEBUG, so each send is logged once through the client's own events.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper())

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors = shared_processors + [
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in HTTP_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


async def log_request(request: httpx.Request) -> None:
    """
    Log an outgoing request and start its timer.

    Args:
        request: Outgoing httpx request
    """
    request.extensions["fcm_start_time"] = time.monotonic()
    logger.debug(
        "fcm_request_started",
        method=request.method,
        url=str(request.url),
    )


async def log_response(response: httpx.Response) -> None:
    """
    Log a received response with the elapsed time.

    Args:
        response: httpx response, before the body is read
    """
    request = response.request
    start_time = request.extensions.get("fcm_start_time")
    duration = time.monotonic() - start_time if start_time is not None else None

    logger.info(
        "fcm_request_completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        duration=duration,
    )


def event_hooks() -> dict[str, list]:
    """Get httpx event hooks that log request/response pairs."""
    return {"request": [log_request], "response": [log_response]}
