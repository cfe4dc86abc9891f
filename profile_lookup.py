"""Profiled operation durations and the replica-aware lookup over them."""

from collections.abc import Mapping
from typing import Dict, Iterator, Optional

import pandas as pd

from placement_graph import Node

DEFAULT_ORIGIN_ATTR = "_tge_origin"


def _coerce_duration(name, value) -> int:
    problem = f"profile entry '{name}' must be an integer duration (got {value!r})"
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(problem)
    try:
        duration = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(problem) from exc
    if duration < 0:
        raise ValueError(f"profile entry '{name}' must be >= 0 (got {duration})")
    return duration


class ProfileTable(Mapping):
    """Read-only mapping of origin node name to measured duration.

    Durations are non-negative integers in whatever unit the profiler used.
    """

    def __init__(self, entries: Optional[Dict[str, int]] = None) -> None:
        table: Dict[str, int] = {}
        for name, value in (entries or {}).items():
            table[str(name)] = _coerce_duration(name, value)
        self._table = table

    def __getitem__(self, name: str) -> int:
        return self._table[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"ProfileTable({len(self._table)} entries)"

    def merged(self, overrides: Dict[str, int]) -> "ProfileTable":
        combined = dict(self._table)
        combined.update(overrides)
        return ProfileTable(combined)


def load_profile_csv(path, name_column: str = "name", duration_column: str = "duration") -> ProfileTable:
    """Read a profile table from a CSV file with a name and a duration column."""
    df = pd.read_csv(path, comment="#")
    missing = [col for col in (name_column, duration_column) if col not in df.columns]
    if missing:
        raise ValueError(f"profile CSV '{path}' is missing column(s): {', '.join(missing)}")
    df = df.dropna(subset=[name_column, duration_column])
    durations = pd.to_numeric(df[duration_column], errors="coerce")
    bad = df[name_column][durations.isna()]
    if not bad.empty:
        raise ValueError(f"profile CSV '{path}' has non-numeric durations for: {', '.join(map(str, bad))}")
    return ProfileTable({str(name): value for name, value in zip(df[name_column], durations)})


def _attr_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return str(value)


class DurationLookup:
    def __init__(self, profile: ProfileTable, replication_factor: int, origin_attr: str = DEFAULT_ORIGIN_ATTR) -> None:
        if isinstance(replication_factor, bool) or not isinstance(replication_factor, int):
            raise TypeError(f"replication_factor must be an int (got {replication_factor!r})")
        if replication_factor < 1:
            raise ValueError(f"replication_factor must be >= 1 (got {replication_factor})")
        self.profile = profile
        self.replication_factor = replication_factor
        self.origin_attr = origin_attr

    def duration(self, node: Node, device: int) -> Optional[int]:
        """Profiled duration of ``node``, or ``None`` when it has no profile entry.

        A replica (origin name differs from its own name) gets the origin's
        time split evenly across ``replication_factor`` replicas. ``device``
        is unused; timings do not vary by device yet.
        """
        origin = _attr_text(node.attr.get(self.origin_attr))
        if origin is None:
            return None
        measured = self.profile.get(origin)
        if measured is None:
            return None
        if node.name == origin:
            return measured
        # even split across replicas is an approximation, not a measurement
        return measured // self.replication_factor
