import atexit
import io
import json
import logging
import os
import sys
import time
from typing import Any

import llmpanel.util.config as config

TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")


def trace(self, message, *args, **kwargs):
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


logging.Logger.trace = trace

log_level = config.CONFIG["app"].get("log_level", logging.INFO)
log_output = config.CONFIG["app"].get("log_output", "stdout").lower()


def _clone_stdout() -> io.TextIOBase | None:
    # duplicated before anything can redirect fd 1
    try:
        return os.fdopen(os.dup(1), "w", buffering=1, encoding="utf-8", errors="replace")
    except (OSError, ValueError):
        return getattr(sys, "stdout", None)


_ORIGINAL_STDOUT: io.TextIOBase | None = _clone_stdout()


def emit_event(etype: str, **data: Any) -> None:
    """Write one `{"type", "ts", ...data}` JSON line to the machine channel (original stdout)."""
    line = json.dumps({"type": etype, "ts": time.time(), **data}, ensure_ascii=False)
    stream = _ORIGINAL_STDOUT or sys.stdout
    try:
        stream.write(line + "\n")
        stream.flush()
    except (OSError, ValueError):
        # host closed the pipe
        pass


def _build_handler() -> logging.Handler:
    """Human-readable logs never share stdout with NDJSON events."""
    if log_output != "file":
        return logging.StreamHandler(sys.stderr)

    os.makedirs(config.logs_folder_path, exist_ok=True)
    log_file = open(os.path.join(config.logs_folder_path, "app.log"),
                    mode="a", buffering=1, encoding="utf-8", errors="replace")
    atexit.register(log_file.close)
    return logging.StreamHandler(log_file)


_handler = _build_handler()
_handler.setLevel(log_level)
_handler.setFormatter(logging.Formatter(
    fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
))

_package_logger = logging.getLogger("llmpanel")
_package_logger.setLevel(log_level)
for h in list(_package_logger.handlers):
    _package_logger.removeHandler(h)
_package_logger.addHandler(_handler)


def getLogger(name):
    logger = logging.getLogger(name)
    logger.emit_event = emit_event  # type: ignore[attr-defined]
    return logger
