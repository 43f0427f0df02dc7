"""Structured logging for the grading engine, built on structlog.

Engine modules log snake_case events with keyword context::

    logger = get_logger(__name__)
    logger.info("submission_reviewed", submission_id=str(submission_id))

Actor ids come from the explicit ``EngineContext`` (``ctx.log_context()``);
entry points such as the CLI additionally bind an invocation id for the
duration of one command.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from ascent.config import EngineSettings


def _processors(json_format: bool) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "ascent",
) -> None:
    """Route engine logs to stdout as JSON lines (or console output when developing).

    Args:
        level: Minimum level name, e.g. ``DEBUG`` or ``WARNING``
        json_format: JSON lines when True, human-readable console output otherwise
        service_name: Bound to every entry as ``service``
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    structlog.configure(
        processors=_processors(json_format),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def configure_from_settings(settings: "EngineSettings | None" = None) -> None:
    """Apply ``log_level``, ``log_json`` and ``service_name`` from the engine settings."""
    if settings is None:
        from ascent.config import get_settings

        settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name=settings.service_name,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_command_context(command: str, actor_id: str | None = None, **extra: Any) -> str:
    """Tag every log entry of one engine invocation; returns the invocation id."""
    invocation_id = str(uuid4())
    context: dict[str, Any] = {"invocation_id": invocation_id, "command": command, **extra}
    if actor_id:
        context["actor_id"] = actor_id
    structlog.contextvars.bind_contextvars(**context)
    return invocation_id


def clear_command_context() -> None:
    """Drop per-invocation context, keeping the bound service name."""
    structlog.contextvars.unbind_contextvars("invocation_id", "command", "actor_id")


__all__ = [
    "bind_command_context",
    "clear_command_context",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
]
