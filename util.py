import os
import threading
from typing import Dict, Iterable, List, Optional, Tuple

# queued (category, message) pairs, printed once at the end of a run
_LOG_MESSAGES: List[Tuple[Optional[str], str]] = []
_LOG_LOCK = threading.Lock()

_SECTIONS = (
    ("coverage", "PROFILE COVERAGE"),
    ("results", "RESULTS"),
)
_BORDER = "=" * 60

_REPO_ROOT = os.path.abspath(os.environ.get("PLACESIM_REPO_ROOT", os.getcwd()))


def log_message(message: str, category: Optional[str] = None) -> None:
    """Queue ``message`` under ``category`` until :func:`flush_log_queue`."""
    if message is None or str(message) == "":
        return
    key = str(category).strip().lower() if category else None
    with _LOG_LOCK:
        _LOG_MESSAGES.append((key, str(message)))


def drain_log_messages() -> List[Tuple[Optional[str], str]]:
    """Return and clear all queued log messages (category, message)."""
    with _LOG_LOCK:
        drained = list(_LOG_MESSAGES)
        _LOG_MESSAGES.clear()
    return drained


def _group_by_section(entries) -> Tuple[Dict[str, List[str]], List[str]]:
    known = {key for key, _ in _SECTIONS}
    grouped: Dict[str, List[str]] = {key: [] for key in known}
    loose: List[str] = []
    for category, message in entries:
        if category in known:
            grouped[category].append(message)
        else:
            loose.append(message)
    return grouped, loose


def flush_log_queue() -> None:
    """Print queued messages, one bordered block per known section."""
    entries = drain_log_messages()
    if not entries:
        return
    grouped, loose = _group_by_section(entries)
    print()
    blocks = [(title, grouped[key]) for key, title in _SECTIONS if grouped[key]]
    for title, lines in blocks:
        print(f"{_BORDER}\n{title}\n{_BORDER}")
        print("\n".join(lines))
    if blocks:
        print(_BORDER)
    for line in loose:
        print(line)


def relpath_display(path: str) -> str:
    """Return ``path`` relative to the repo root when it lives under it."""
    if not path:
        return ""
    abs_path = os.path.abspath(path)
    try:
        rel = os.path.relpath(abs_path, start=_REPO_ROOT)
    except ValueError:
        return abs_path
    return abs_path if rel.startswith("..") else rel


def summarize_names(names: Iterable[str], limit: int = 8) -> str:
    """Comma-join ``names``, eliding everything past ``limit`` entries."""
    names = list(names)
    if len(names) <= limit:
        return ", ".join(names)
    return f"{', '.join(names[:limit])}, ... (+{len(names) - limit} more)"
