"""Utilities for tracing the stages of a run."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

__all__ = [
    "trace_context",
    "current_trace",
]


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


def current_trace() -> str:
    """Return the label of the stages currently being executed."""
    return " > ".join(trace.get([]))


@contextmanager
def trace_context(name: str) -> Generator[str, None, None]:
    """Run the body as a named stage, logging its duration when it finishes."""
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield label
    finally:
        t2 = perf_counter()
        trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, (t2 - t1))
