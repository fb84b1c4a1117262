"""Logging setup shared by every runbox module.

As a library, runbox only attaches a NullHandler to the ``runbox`` logger.
Handlers are the host application's business; the CLI opts in through
configure_logging(). RUNBOX_LOG_LEVEL sets the starting level.

Per-request context:
    Records about one execution carry the session id as ``context_id`` in
    ``extra``. session_logger() binds it once so call sites only add their
    own fields. The CLI formatter prints the session id next to the logger
    name and appends the remaining ``extra`` fields as key=value pairs:

    WARNING [2026-02-25 10:02:54] runbox.fallback_runner [9f3c2a7d] - Using fallback executor language=python

Delivery:
    The CLI handler is a QueueHandler feeding a QueueListener thread that
    writes with click.echo(err=True), so an execution coroutine never waits
    on stderr. The queue is bounded; records that do not fit are dropped.
"""

import contextlib
import logging
import logging.handlers
import os
import queue
from collections.abc import Mapping, MutableMapping
from typing import Any

import click

LIBRARY_LOGGER_NAME: str = "runbox"

# Key under which per-request records carry the session id
CONTEXT_ID_FIELD: str = "context_id"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

_level_name = os.environ.get("RUNBOX_LOG_LEVEL", "").strip().upper()
_level_value = logging.getLevelNamesMapping().get(_level_name)
if _level_value:  # NOTSET and unknown names leave the level alone
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_level_value)

_DATEFMT = "%Y-%m-%d %H:%M:%S"

_QUEUE_CAPACITY = 4096

# Attributes every LogRecord has; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra`` fields attached to ``record``, in insertion order."""
    return {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}


def _render_value(value: Any) -> str:
    text = str(value)
    return repr(text) if not text or any(ch.isspace() for ch in text) else text


class SessionFormatter(logging.Formatter):
    """``LEVEL [time] logger [session] - message key=value ...``

    The session part and the trailing pairs only appear when the record
    has them.
    """

    def __init__(self) -> None:
        super().__init__(datefmt=_DATEFMT)

    def formatMessage(self, record: logging.LogRecord) -> str:
        fields = extra_fields(record)
        context_id = fields.pop(CONTEXT_ID_FIELD, None)

        line = f"{record.levelname} [{self.formatTime(record, self.datefmt)}] {record.name}"
        if context_id:
            line += f" [{context_id}]"
        line += f" - {record.message}"
        if fields:
            line += " " + " ".join(f"{key}={_render_value(value)}" for key, value in fields.items())
        return line


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Logger bound to one execution session.

    Unlike the stdlib adapter, per-call ``extra`` is merged with the bound
    fields instead of replacing them.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def session_logger(logger: logging.Logger, context_id: str, **fields: Any) -> SessionLoggerAdapter:
    """Bind ``context_id`` (and any extra ``fields``) to ``logger``.

    Usage:
        log = session_logger(logger, session.session_id, language="python")
        log.warning("Using fallback executor", extra={"pid": 4242})
    """
    bound: Mapping[str, Any] = {CONTEXT_ID_FIELD: context_id, **fields}
    return SessionLoggerAdapter(logger, bound)


class _StderrHandler(logging.Handler):
    """Writes dimmed, formatted records with click.echo(err=True).

    Runs on the listener thread. click strips the styling when stderr is
    not a terminal.
    """

    def __init__(self) -> None:
        super().__init__()
        self.setFormatter(SessionFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(click.style(self.format(record), dim=True), err=True)
        except BlockingIOError:
            pass  # stderr is full; drop the record
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _QueuedStderrHandler(logging.handlers.QueueHandler):
    """Hands records to a bounded queue drained by a listener thread."""

    def __init__(self) -> None:
        records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(records)
        self._listener = logging.handlers.QueueListener(records, _StderrHandler(), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Same process: keep the record as is so the extra fields survive
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Logger for a runbox module (``name`` is the module's ``__name__``)."""
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Route runbox records to stderr; meant for the CLI and small apps.

    Installs the queued stderr handler once, however often it is called.

    Args:
        level: Level for the ``runbox`` logger. Wins over RUNBOX_LOG_LEVEL.
        quiet: Only show errors. Wins over ``level``.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _QueuedStderrHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_QueuedStderrHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
