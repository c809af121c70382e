"""
Small shared utilities.
"""
from __future__ import annotations

import re
import time
from contextlib import contextmanager
from typing import Generator

_TRAILING_SEMICOLONS = re.compile(r"[\s;]+$")


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def strip_semicolons(sql: str) -> str:
    """Trim whitespace and any trailing semicolons (the executor rejects them)."""
    return _TRAILING_SEMICOLONS.sub("", sql.strip())
