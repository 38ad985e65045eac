"""
Logging for the review engine.

Every request or batch runs with its own logger held in a ContextVar, so
helpers deep in the pipeline call ``get_logger()`` instead of threading a
logger through every signature. ``asyncio.gather`` tasks and
``asyncio.to_thread`` workers inherit it through context copying.
"""

import os
import re
import json
import logging
import pathlib
import datetime
import logging.config
from typing import Union
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler


_logger_var: ContextVar[Union[logging.Logger, logging.LoggerAdapter, None]] = ContextVar(
    "batch_tool_logger", default=None
)

ANSI = {
    "red": "\033[31m",
    "green": "\033[32m",
    "blue": "\033[34m",
    "orange": "\033[33m",
    "grey": "\033[90m",
    "white": "\033[97m",
    "purple": "\033[35m",
    "reset": "\033[0m",
}

CONFIG_FILE = pathlib.Path(__file__).resolve().parent.parent / "logging_config.json"

# record attribute -> value used when the active logger does not supply it
CONTEXT_DEFAULTS = {
    "tool_name": "N/A",
    "batch_id": "N/A",
    "ip_address": "no_ip",
    "request_type": "N/A",
}
CONTEXT_KEYS = tuple(CONTEXT_DEFAULTS)

NOISY_LIBS = ("httpx", "httpcore", "hpack", "fitz", "multipart", "python_multipart")

BATCH_LOG_MAX_BYTES = 5_000_000


def set_logger(logger: logging.Logger, **extra):
    """Install ``logger`` (wrapped with ``extra`` context) for the current task."""
    _logger_var.set(logging.LoggerAdapter(logger, extra))


def get_logger() -> logging.Logger:
    logger = _logger_var.get()
    if logger is None:
        raise RuntimeError("Tool-specific logger not set in this context")
    return logger


class NoDebugFilter(logging.Filter):
    def filter(self, record):
        return record.levelno > logging.DEBUG


class ContextFilter(logging.Filter):
    """Copies request/batch context from the active adapter onto each record."""

    def filter(self, record):
        current = _logger_var.get()
        extra = getattr(current, "extra", None) or {}
        for key, fallback in CONTEXT_DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, extra.get(key, fallback))
        return True


class PidToolHandlerFilter(logging.Filter):
    """Batch files keep DEBUG detail and failures; INFO chatter goes to console only."""

    def filter(self, record):
        return record.levelno == logging.DEBUG or record.levelno >= logging.ERROR


def setup_logging(config_file: pathlib.Path | None = None):
    config = json.loads(pathlib.Path(config_file or CONFIG_FILE).read_text())

    for handler in config.get("handlers", {}).values():
        if "filename" in handler:
            path = pathlib.Path(handler["filename"]).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            handler["filename"] = str(path)

    logging.config.dictConfig(config)

    for name in NOISY_LIBS:
        lib_logger = logging.getLogger(name)
        lib_logger.setLevel(logging.ERROR)
        lib_logger.propagate = False

    context_filter = ContextFilter()
    root_logger = logging.getLogger()
    root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        handler.addFilter(context_filter)
        handler.addFilter(NoDebugFilter())


def _log_root() -> pathlib.Path:
    override = os.getenv("PROPOSAL_ENGINE_LOG_DIR")
    if override:
        return pathlib.Path(override).expanduser()
    return pathlib.Path.home() / "process_logs"


def pid_tool_logger(batch_id: str, tool_name: str) -> logging.Logger:
    """
    Logger writing to ``<log root>/<batch_id>/<tool_name>.log``.

    Calling it again for the same batch and tool replaces the file handler
    rather than stacking a second one. Pair every call with
    ``release_tool_logger`` once the batch is done.
    """
    log_dir = _log_root() / batch_id
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=log_dir / f"{tool_name}.log",
        maxBytes=BATCH_LOG_MAX_BYTES,
        backupCount=1,
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    handler.addFilter(PidToolHandlerFilter())

    logger = logging.getLogger(f"ProposalEngine.{tool_name}.{batch_id}")
    logger.setLevel(logging.DEBUG)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    logger.propagate = True
    return logger


def release_tool_logger(logger: logging.Logger):
    """Close the batch file handler and drop the logger from the registry."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logging.Logger.manager.loggerDict.pop(logger.name, None)


class DynamicPrefixFormatter(logging.Formatter):
    """
    One aligned line per record:

        [+] 2026-01-01 12:00:00 review-3f2a9c0d1e4b  127.0.0.1  POST  - INFO    - REVIEW   : proposal_review  message

    ``[-]`` marks warnings and errors. Pass ``color=False`` for file handlers.
    """

    # (record attribute, default, width, color)
    COLUMNS = (
        ("batch_id", "N/A", 26, "blue"),
        ("ip_address", "no_ip", 15, "orange"),
    )
    PROC_W = 6
    LEVEL_W = 7
    TOOL_W = 9
    FUNC_W = 20

    TOOL_BASES = (
        ("review", "REVIEW"),
        ("upload", "UPLOAD"),
        ("extract", "UPLOAD"),
        ("chat", "CHAT"),
        ("openrouter", "LLM"),
    )

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = bool(color)

    def _paint(self, color: str, text: str) -> str:
        return f"{ANSI[color]}{text}" if self.color else text

    @classmethod
    def _derive_tool_base(cls, record: logging.LogRecord) -> str:
        tb = getattr(record, "tool_base", None)
        if tb:
            return str(tb).upper()

        name = record.name or ""
        tool = name.split(".", 1)[1] if "." in name else (getattr(record, "tool_name", "") or "")
        tool = re.sub(r"(_main|_worker)$", "", tool.lower())

        for needle, base in cls.TOOL_BASES:
            if needle in tool:
                return base
        return "-"

    def format(self, record: logging.LogRecord) -> str:
        request_type = getattr(record, "request_type", None) or "N/A"
        failed = record.levelno >= logging.WARNING

        if failed:
            prefix = self._paint("red", "[-]")
        else:
            prefix = self._paint("grey" if request_type.upper() == "GET" else "green", "[+]")

        ts = datetime.datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        parts = [prefix, self._paint("white", ts)]
        for attr, default, width, color in self.COLUMNS:
            value = (getattr(record, attr, None) or default)[:width]
            parts.append(self._paint(color, f"{value:<{width}}"))

        proc = request_type[: self.PROC_W]
        proc_col = self._paint("green" if proc == "POST" else "white", f"{proc:<{self.PROC_W}}")
        dash = self._paint("red", " - ")
        level_col = self._paint(
            "red" if record.levelno >= logging.ERROR else "purple",
            f"{record.levelname:<{self.LEVEL_W}}",
        )
        tool = self._derive_tool_base(record)
        func = (getattr(record, "tool_name", None) or "N/A")[: self.FUNC_W]

        line = (
            " ".join(parts)
            + f" {proc_col}{dash}{level_col}{dash}"
            + self._paint("grey", f"{tool:<{self.TOOL_W}}")
            + ": "
            + self._paint("grey", f"{func:<{self.FUNC_W}}")
            + " "
            + self._paint("grey", record.getMessage())
        )

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)
        if self.color:
            line += ANSI["reset"]
        return line
