import logging
import time
from contextlib import contextmanager
from typing import Optional

LOG_FORMAT = "[%(levelname)s] %(message)s"


def make_logger(name: str = "baseline_sfm", level: int = logging.INFO) -> logging.Logger:
    """Return a logger with a single stream handler (safe to call repeatedly)."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(h)
    logger.setLevel(level)
    return logger


def level_for(verbose: bool) -> int:
    return logging.DEBUG if verbose else logging.INFO


@contextmanager
def timed(logger: Optional[logging.Logger], msg: str, level: int = logging.INFO):
    """Log `msg` before and after the block, with the elapsed wall time."""
    t0 = time.perf_counter()
    if logger:
        logger.log(level, f"{msg} ...")
    yield
    dt = time.perf_counter() - t0
    if logger:
        logger.log(level, f"{msg} done in {dt:.2f}s")
