"""Uvicorn logging configuration routed through the structlog renderer."""

import logging
import os

import structlog


def get_uvicorn_log_level():
    level = os.getenv("UVICORN_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level, logging.INFO)


def get_log_format():
    return os.getenv("LOG_FORMAT", "pretty").lower()


def get_log_colors():
    return os.getenv("LOG_COLORS", "true").lower() in ("true", "1", "yes", "on")


class RenameLoggerProcessor:
    """Give uvicorn's loggers names that say what they log."""

    def __call__(self, logger, name, event_dict):
        if event_dict.get("logger") == "uvicorn.error":
            event_dict["logger"] = "uvicorn.server"
        elif event_dict.get("logger") == "uvicorn.access":
            event_dict["logger"] = "uvicorn.http"
        return event_dict


def _quiet(level: str | int) -> dict:
    return {"handlers": ["default"], "level": level, "propagate": False}


def get_logging_config():
    """dictConfig for ``uvicorn.Config(log_config=...)``."""
    if get_log_format() == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=get_log_colors())

    uvicorn_level = get_uvicorn_log_level()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": renderer,
                "foreign_pre_chain": [
                    structlog.stdlib.add_logger_name,
                    structlog.stdlib.add_log_level,
                    RenameLoggerProcessor(),
                    structlog.stdlib.PositionalArgumentsFormatter(),
                    structlog.processors.TimeStamper(fmt="iso"),
                    structlog.processors.StackInfoRenderer(),
                    structlog.processors.UnicodeDecoder(),
                ],
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": _quiet(uvicorn_level),
            "uvicorn.access": _quiet(uvicorn_level),
            "uvicorn.error": _quiet(uvicorn_level),
            "httpx": _quiet("WARNING"),
            "httpcore": _quiet("WARNING"),
            "openai": _quiet("INFO"),
            "dulwich": _quiet("WARNING"),
        },
    }
