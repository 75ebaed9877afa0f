import logging
import sys
import time
from contextlib import contextmanager
from functools import wraps

logger = logging.getLogger("normaflux")

_INDENT = {"level": 0}


def setup_logging(verbose: bool = False) -> None:
    """Attach a stdout handler to the package logger (idempotent)."""
    level = logging.DEBUG if verbose else logging.INFO
    ours = [h for h in logger.handlers if getattr(h, "_normaflux", False)]
    if ours:
        # stdout may have been swapped since the first call
        for h in ours:
            h.setStream(sys.stdout)
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
        handler._normaflux = True
        logger.addHandler(handler)
    logger.setLevel(level)


def _indented(msg: str) -> str:
    return "  " * _INDENT["level"] + msg


def log_info(msg: str) -> None:
    logger.info(_indented(msg))


def log_warning(msg: str) -> None:
    logger.warning(_indented(msg))


@contextmanager
def log_indent():
    """Indent every message logged inside the block by one step."""
    _INDENT["level"] += 1
    try:
        yield
    finally:
        _INDENT["level"] -= 1


def log_time(step_name: str):
    """Decorator logging the start and wall time of a pipeline step."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            log_info(f"{step_name}...")
            start = time.perf_counter()
            with log_indent():
                result = func(*args, **kwargs)
            log_info(f"{step_name} done in {time.perf_counter() - start:.2f}s")
            return result
        return wrapper
    return decorator

