"""Logging setup for the oil painting simulator, the paint script and the tests.

Library modules only do ``logger = logging.getLogger(__name__)``; handlers are attached
once by the application (scripts/paint.py) through setup_logging().

Provides:
    - Console handler (stderr) and optional file handler, rotated by size or time
    - Human lines or JSON lines
    - Context fields (job, cfg, ...) printed on every record
    - Python warnings and uncaught exceptions routed into logging

Public API:
    setup_logging("INFO", "outputs/logs/paint.log", context={"app": "paint"})
    with log_context(job="portrait"):
        ...
    push_context(image="portrait.png") / pop_context(["image"]) / get_context()

Line formats:
    Human: 2026-03-02T09:14:07.512Z | INFO     | job=portrait cfg=3fa91c0e | Painting finished: 412 traces
    JSON:  {"t": "2026-03-02T09:14:07.512000+00:00", "lvl": "INFO", "name": "...", "pid": 4242,
            "msg": "...", "job": "portrait"}

Timestamps are UTC. Calling setup_logging() again replaces the handlers it attached.
"""

import contextlib
import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


_fields: contextvars.ContextVar = contextvars.ContextVar('oilpaint_log_fields', default={})

# Handlers attached by the last setup_logging() call
_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Render a record with the active context fields, as a human line or a JSON object.

    Parameters
    ----------
    fmt_mode : str
        "human" or "json"
    use_color : bool
        Color the level name (ignored unless stderr is a TTY)
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = False):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown format mode: {fmt_mode!r} (expected 'human' or 'json')")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created, tz=timezone.utc)
        fields = _fields.get()
        exc = self.formatException(record.exc_info) if record.exc_info else None

        if self.fmt_mode == "json":
            entry = {
                't': when.isoformat(),
                'lvl': record.levelname,
                'name': record.name,
                'pid': os.getpid(),
                'msg': record.getMessage(),
                **fields,
            }
            if exc:
                entry['exc'] = exc
            return json.dumps(entry, default=str)

        level = f"{record.levelname:<8}"
        if self.use_color and record.levelno in _LEVEL_COLORS:
            level = _LEVEL_COLORS[record.levelno] + level + _RESET
        columns = [when.strftime('%Y-%m-%dT%H:%M:%S.') + f"{when.microsecond // 1000:03d}Z", level]
        if fields:
            columns.append(' '.join(f"{key}={value}" for key, value in fields.items()))
        columns.append(record.getMessage())

        line = ' | '.join(columns)
        return f"{line}\n{exc}" if exc else line


def _size_rotating(path: Path, options: Dict[str, Any]) -> logging.Handler:
    return logging.handlers.RotatingFileHandler(
        path,
        maxBytes=options.get('max_bytes', 10_000_000),
        backupCount=options.get('backup_count', 3)
    )


def _time_rotating(path: Path, options: Dict[str, Any]) -> logging.Handler:
    return logging.handlers.TimedRotatingFileHandler(
        path,
        when=options.get('when', 'D'),
        interval=options.get('interval', 1),
        backupCount=options.get('backup_count', 7),
        utc=True
    )


_ROTATIONS = {'size': _size_rotating, 'time': _time_rotating}


def _file_handler(log_file: str, rotate: Optional[Dict[str, Any]]) -> logging.Handler:
    path = Path(log_file)
    if rotate is None:
        factory = None
    else:
        mode = rotate.get('mode', 'size')
        if mode not in _ROTATIONS:
            raise ValueError(f"Unknown rotation mode: {mode!r} (expected one of {sorted(_ROTATIONS)})")
        factory = _ROTATIONS[mode]

    path.parent.mkdir(parents=True, exist_ok=True)
    if factory is None:
        return logging.FileHandler(path)
    return factory(path, rotate)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
    capture_warnings: bool = True,
    quiet_libs: Optional[List[str]] = None,
    context: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Attach console/file handlers to the root logger.

    Parameters
    ----------
    log_level : str
        Root level name ("DEBUG", "INFO", ...), case insensitive
    log_file : str, optional
        Log file path (parent directories are created)
    json : bool
        JSON lines in the log file; the console always gets human lines
    color : bool
        Colored level names on a TTY console
    to_stderr : bool
        Attach the console handler
    rotate : dict, optional
        {"mode": "size", "max_bytes": ..., "backup_count": ...} or
        {"mode": "time", "when": "D", "interval": 1, "backup_count": ...}
    capture_warnings : bool
        Route the warnings module into logging
    quiet_libs : list[str], optional
        Third-party loggers capped at WARNING (default ["PIL"])
    context : dict, optional
        Context fields pushed right away

    Returns
    -------
    dict
        {"handlers": [...]}: the handlers attached by this call

    Raises
    ------
    ValueError
        Unknown level name or rotation mode
    """
    level = _parse_level(log_level)
    new_handlers = []
    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", use_color=color))
        new_handlers.append(console)
    if log_file:
        handler = _file_handler(log_file, rotate)
        handler.setFormatter(ContextFormatter("json" if json else "human"))
        new_handlers.append(handler)

    root = logging.getLogger()
    while _installed:
        old = _installed.pop()
        root.removeHandler(old)
        old.close()
    for handler in new_handlers:
        root.addHandler(handler)
    _installed.extend(new_handlers)
    root.setLevel(level)

    for name in (["PIL"] if quiet_libs is None else quiet_libs):
        logging.getLogger(name).setLevel(logging.WARNING)
    if capture_warnings:
        route_warnings()
    if context:
        push_context(**context)

    return {'handlers': new_handlers}


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Change the root level, e.g. set_level("debug") while diagnosing rejections."""
    logging.getLogger().setLevel(_parse_level(level))


def push_context(**fields) -> None:
    """Add (or overwrite) context fields."""
    _fields.set({**_fields.get(), **fields})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Drop the given context fields, or all of them."""
    if keys is None:
        _fields.set({})
    else:
        _fields.set({k: v for k, v in _fields.get().items() if k not in keys})


def get_context() -> Dict[str, Any]:
    return dict(_fields.get())


@contextlib.contextmanager
def log_context(**fields) -> Iterator[None]:
    """Context fields for the duration of a block; the previous fields are restored after.

    Examples
    --------
    >>> with log_context(job="portrait", cfg="3fa91c0e"):
    ...     logger.info("Starting painting")
    """
    token = _fields.set({**_fields.get(), **fields})
    try:
        yield
    finally:
        _fields.reset(token)


def install_excepthook() -> None:
    """Log uncaught exceptions at CRITICAL; Ctrl+C keeps the default hook."""
    previous = sys.excepthook

    def _hook(exc_type, exc_value, exc_tb):
        if not issubclass(exc_type, KeyboardInterrupt):
            logging.getLogger(__name__).critical(
                "Uncaught exception", exc_info=(exc_type, exc_value, exc_tb)
            )
        previous(exc_type, exc_value, exc_tb)

    sys.excepthook = _hook


def route_warnings() -> None:
    logging.captureWarnings(True)


def shutdown() -> None:
    """Flush and close every handler."""
    logging.shutdown()
