"""Loguru setup shared by every stackforge component.

Pipeline and update runs bind a correlation id for their duration; each
record picks it up as ``extra["cid"]``, so interleaved lines from a build
and a health poll can still be told apart.

Examples
--------
>>> from stackforge.kernel.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Phase {phase} started", phase="build")

Pick a sink once at startup::

    from stackforge.kernel.logging import configure_logging
    configure_logging(level="DEBUG", format="rich")
"""

import contextvars
import logging
import os
import sys
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    import types

    from loguru import Logger, Record

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json", "structured", "rich"]

NO_CORRELATION_ID = "-"

_active_settings: dict[str, Any] | None = None
_sink_ids: list[int] = []

correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "stackforge_correlation_id", default=NO_CORRELATION_ID
)


def _inject_correlation_id(record: "Record") -> None:
    record["extra"].setdefault("cid", correlation_id.get())


def _text_format(include_timestamp: bool, colorize: bool) -> str:
    stamp = "{time:YYYY-MM-DD HH:mm:ss} " if include_timestamp else ""
    if not colorize:
        return stamp + "{level: <8} | {extra[cid]} | {name} | {message}"
    if stamp:
        stamp = f"<green>{stamp}</green>"
    return (
        f"{stamp}<level>{{level: <8}}</level> "
        "<magenta>{extra[cid]}</magenta> <cyan>{name}:{line}</cyan> | <level>{message}</level>"
    )


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "structured",
    output_file: str | Path | None = None,
    use_color: bool = True,
    include_timestamp: bool = True,
    force_reconfigure: bool = False,
    enable_stdlib_bridge: bool = False,
    diagnose: bool = False,
) -> None:
    """Install the stackforge sinks.

    Repeated calls with unchanged settings do nothing. Reconfiguring only
    removes sinks added here, so handlers owned by pytest or an embedding
    application are left alone. The first call also drops loguru's default
    stderr sink.

    Parameters
    ----------
    level : LogLevel, default="INFO"
        Minimum level for every sink
    format : LogFormat, default="structured"
        ``console`` plain text, ``structured`` colored text with the
        correlation id, ``json`` serialized records, ``rich`` a RichHandler on stderr
    output_file : str | Path | None, default=None
        Extra JSON sink, rotated at 10 MB
    use_color : bool, default=True
        Color the structured format when stderr is a terminal
    include_timestamp : bool, default=True
        Prefix text records with a timestamp
    force_reconfigure : bool, default=False
        Rebuild the sinks even if the settings match
    enable_stdlib_bridge : bool, default=False
        Forward records from stdlib ``logging`` (aiosqlite, asyncio)
    diagnose : bool, default=False
        Render local variables in tracebacks
    """
    global _active_settings

    settings = {
        "level": level,
        "format": format,
        "output_file": str(output_file) if output_file else None,
        "use_color": use_color,
        "include_timestamp": include_timestamp,
        "enable_stdlib_bridge": enable_stdlib_bridge,
        "diagnose": diagnose,
    }
    if settings == _active_settings and not force_reconfigure:
        return

    if _active_settings is None:
        # loguru's pre-installed stderr sink would duplicate every record
        with suppress(ValueError):
            logger.remove(0)

    while _sink_ids:
        with suppress(ValueError):
            logger.remove(_sink_ids.pop())

    logger.configure(patcher=_inject_correlation_id)
    common: dict[str, Any] = {"level": level, "backtrace": True, "diagnose": diagnose}

    if format == "rich":
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            markup=False,
            show_time=include_timestamp,
        )
        _sink_ids.append(logger.add(handler, format="[{extra[cid]}] {message}", **common))
    elif format == "json":
        _sink_ids.append(logger.add(sys.stderr, serialize=True, **common))
    else:
        colorize = format == "structured" and use_color and sys.stderr.isatty()
        _sink_ids.append(
            logger.add(
                sys.stderr,
                format=_text_format(include_timestamp, colorize),
                colorize=colorize,
                **common,
            )
        )

    if output_file:
        path = Path(output_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        _sink_ids.append(
            logger.add(path, serialize=True, rotation="10 MB", retention="1 week", **common)
        )

    if enable_stdlib_bridge:
        enable_stdlib_logging_bridge()

    _active_settings = settings


@lru_cache(maxsize=256)
def get_logger(name: str) -> "Logger":
    """Return the shared logger bound to ``name``.

    The first call configures logging from ``STACKFORGE_LOG_LEVEL`` and
    ``STACKFORGE_LOG_FORMAT`` unless ``configure_logging`` already ran.
    """
    if _active_settings is None:
        env_level = os.getenv("STACKFORGE_LOG_LEVEL", "INFO").upper()
        env_format = os.getenv("STACKFORGE_LOG_FORMAT", "structured").lower()
        configure_logging(level=env_level, format=env_format)  # type: ignore[arg-type]
    return logger.bind(module=name)


class _InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame: "types.FrameType | None" = sys._getframe(6)
        depth = 6
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def enable_stdlib_logging_bridge() -> None:
    """Route stdlib ``logging`` records into the loguru sinks."""
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)


def set_correlation_id(cid: str) -> contextvars.Token[str]:
    """Bind ``cid`` to the current context and return the reset token.

    Examples
    --------
    >>> token = set_correlation_id("run-abc-123")
    >>> get_correlation_id()
    'run-abc-123'
    >>> reset_correlation_id(token)
    """
    return correlation_id.set(cid)


def reset_correlation_id(token: contextvars.Token[str]) -> None:
    correlation_id.reset(token)


def get_correlation_id() -> str:
    return correlation_id.get()
