"""Deferred Graphviz rendering for schedule views.

With ``PLACESIM_VISUALIZE_GRAPHS`` set, renders go to a background thread
and are collected by :func:`wait_for_all`; otherwise they run inline.
Completion notices land in the ``results`` log section.
"""

import atexit
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

from util import log_message

_ENV_FLAG = "PLACESIM_VISUALIZE_GRAPHS"

_lock = threading.Lock()
_executor: Optional[ThreadPoolExecutor] = None
_pending: List[Tuple[str, Future, Optional[str]]] = []


def _threaded() -> bool:
    value = os.environ.get(_ENV_FLAG, "")
    return value.strip().lower() not in {"", "0", "false", "no"}


def submit(description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
    """Run ``fn`` now, or on the render thread when threading is enabled."""
    global _executor
    print_message = kwargs.pop("print_message", None)
    if not _threaded():
        fn(*args, **kwargs)
        if print_message:
            log_message(print_message, category="results")
        return None
    with _lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="graphviz")
        future = _executor.submit(fn, *args, **kwargs)
        _pending.append((description, future, print_message))
    return future


def wait_for_all() -> None:
    """Block until queued renders finish, logging each outcome."""
    with _lock:
        tasks = list(_pending)
        _pending.clear()
    for description, future, message in tasks:
        try:
            future.result()
        except Exception as exc:  # pragma: no cover - rendering is best effort
            log_message(f"[WARN] Graph visualization '{description}' failed: {exc}")
        else:
            if message:
                log_message(message, category="results")


def reset_for_tests() -> None:
    with _lock:
        _pending.clear()


atexit.register(wait_for_all)
