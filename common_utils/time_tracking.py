import contextlib
import functools
import time
import logging


logger = logging.getLogger(__name__)


def timeit(func):
    """Decorator to measure execution time of a function and log it."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        end = time.perf_counter()
        logger.debug(f"[TIMEIT] {func.__name__} executed in {end - start:.4f} seconds")
        return result
    return wrapper


@contextlib.contextmanager
def track_time(name, records=None):
    """Measure the wall-clock time of a block, log it and store it in `records[name]` (milliseconds)."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if records is not None:
            records[name] = elapsed_ms
        logger.info(f"{name} takes {elapsed_ms:.3f} ms")
