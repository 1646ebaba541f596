"""
debug_trace.py

Trace instrumentation for the conversion pipeline.

Tracing is off by default so the converter stays quiet when used as a
library.  Enable it with ``set_trace_enabled(True)`` (the CLI does this
for ``--trace``) or through ``[general] trace = true`` in settings.toml.

Categories used across the code base:
    EXTRACT, CLASSIFY, LAYOUT, STYLE, BUILD, PIPELINE, MMDC, BATCH, WARN,
    ERROR, PRIM (per-primitive decisions, opt-in)
"""

import sys
import threading
import traceback
from datetime import datetime
from functools import wraps
from typing import Optional

# Set to True to enable debug tracing
DEBUG_TRACE = False

# Set to True to trace per-primitive decisions (very verbose)
TRACE_PRIMITIVES = False

# Log file (None for stderr only)
LOG_FILE: Optional[str] = None

_log_file = None
_lock = threading.Lock()


def set_trace_enabled(enabled: bool, log_file: Optional[str] = None, primitives: bool = False) -> None:
    """Turn tracing on or off at runtime.

    Args:
        enabled: Master switch for all trace output.
        log_file: Optional path that receives a copy of every trace line.
        primitives: Also emit the very verbose ``PRIM`` category.
    """
    global DEBUG_TRACE, LOG_FILE, TRACE_PRIMITIVES
    close_log()
    DEBUG_TRACE = enabled
    LOG_FILE = log_file
    TRACE_PRIMITIVES = primitives


def _get_log_file():
    global _log_file
    if LOG_FILE and _log_file is None:
        try:
            _log_file = open(LOG_FILE, "w", encoding="utf-8")
        except OSError:
            pass
    return _log_file


def trace(msg: str, category: str = "INFO"):
    """Print a trace message with timestamp."""
    if not DEBUG_TRACE:
        return
    if category == "PRIM" and not TRACE_PRIMITIVES:
        return

    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    line = f"[{timestamp}] [{category}] {msg}"

    with _lock:
        print(line, file=sys.stderr, flush=True)

        log_file = _get_log_file()
        if log_file:
            try:
                log_file.write(line + "\n")
                log_file.flush()
            except OSError:
                pass


def trace_exception(msg: str = "Exception"):
    """Print exception info."""
    if not DEBUG_TRACE:
        return
    trace(f"{msg}: {traceback.format_exc()}", "ERROR")


def trace_call(category: str = "CALL"):
    """Decorator to trace function calls.

    The enabled check happens per call, so functions decorated at import
    time still trace once ``set_trace_enabled(True)`` has run.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not DEBUG_TRACE:
                return func(*args, **kwargs)
            func_name = func.__qualname__
            trace(f">>> {func_name}", category)
            try:
                result = func(*args, **kwargs)
                trace(f"<<< {func_name}", category)
                return result
            except Exception as e:
                trace(f"!!! {func_name} raised {type(e).__name__}: {e}", "ERROR")
                raise
        return wrapper
    return decorator


def close_log():
    """Close log file."""
    global _log_file
    if _log_file:
        try:
            _log_file.close()
        except OSError:
            pass
        _log_file = None
