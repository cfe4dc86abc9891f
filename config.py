import os
from dataclasses import dataclass, field
from typing import Dict, Optional

import yaml as _yaml
from yaml import YAMLError as _YAMLError

from placement_graph import Target
from profile_lookup import DEFAULT_ORIGIN_ATTR, ProfileTable, load_profile_csv

SCHEDULER_KINDS = ("event_driven", "critical_path")


def _require_mapping(context: str, value: object) -> Dict[str, object]:
    if not isinstance(value, dict):
        raise ValueError(f"{context} must be a mapping")
    return value


def _require_field(context: str, data: Dict[str, object], field: str) -> object:
    if field not in data:
        raise ValueError(f"{context}.{field} must be specified")
    return data[field]


def _parse_int_field(context: str, data: Dict[str, object], field: str, *, min_value: Optional[int] = 1) -> int:
    value = _require_field(context, data, field)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"{context}.{field} must be an integer (got {value!r})")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{context}.{field} must be an integer (got {value!r})") from exc
    if min_value is not None and parsed < min_value:
        raise ValueError(f"{context}.{field} must be >= {min_value}")
    return parsed


def _coerce_bool(value: object, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    raise ValueError(f"{context} must be a boolean (got {value!r})")


@dataclass(frozen=True)
class ProfileSource:
    path: Optional[str] = None
    entries: Dict[str, int] = field(default_factory=dict)
    name_column: str = "name"
    duration_column: str = "duration"

    @classmethod
    def from_dict(cls, profile_dict: Optional[Dict[str, object]], base_dir: str = ".") -> "ProfileSource":
        if profile_dict is None:
            return cls()
        profile_dict = _require_mapping("simulator.profile", profile_dict)
        path = profile_dict.get("path")
        if path is not None:
            path = str(path).strip()
            if not os.path.isabs(path):
                path = os.path.normpath(os.path.join(base_dir, path))
        entries = profile_dict.get("entries") or {}
        entries = _require_mapping("simulator.profile.entries", entries)
        parsed: Dict[str, int] = {}
        for name in entries:
            parsed[str(name)] = _parse_int_field("simulator.profile.entries", entries, name, min_value=0)
        return cls(
            path=path,
            entries=parsed,
            name_column=str(profile_dict.get("name_column", "name")),
            duration_column=str(profile_dict.get("duration_column", "duration")),
        )

    def load(self) -> ProfileTable:
        """CSV contents (if any) with inline ``entries`` layered on top."""
        table = ProfileTable()
        if self.path:
            table = load_profile_csv(self.path, self.name_column, self.duration_column)
        if self.entries:
            table = table.merged(self.entries)
        return table


@dataclass(frozen=True)
class SimulatorConfig:
    scheduler: str = "event_driven"
    replication_factor: int = 1
    origin_attr: str = DEFAULT_ORIGIN_ATTR
    report_coverage: bool = True
    profile: ProfileSource = field(default_factory=ProfileSource)

    @classmethod
    def from_dict(cls, sim_dict: Optional[Dict[str, object]], base_dir: str = ".") -> "SimulatorConfig":
        sim_dict = _require_mapping("simulator", sim_dict if sim_dict is not None else {})
        scheduler = str(sim_dict.get("scheduler", "event_driven")).strip().lower()
        if scheduler not in SCHEDULER_KINDS:
            raise ValueError(f"simulator.scheduler must be one of {', '.join(SCHEDULER_KINDS)} (got {scheduler!r})")
        params = {"replication_factor": 1}
        params.update(sim_dict)
        return cls(
            scheduler=scheduler,
            replication_factor=_parse_int_field("simulator", params, "replication_factor"),
            origin_attr=str(sim_dict.get("origin_attr", DEFAULT_ORIGIN_ATTR)),
            report_coverage=_coerce_bool(sim_dict.get("report_coverage", True), "simulator.report_coverage"),
            profile=ProfileSource.from_dict(sim_dict.get("profile"), base_dir=base_dir),
        )

    def build_profile_table(self) -> ProfileTable:
        return self.profile.load()


def _load_yaml(filename):
    with open(filename, "r") as f:
        try:
            return _yaml.safe_load(f)
        except _YAMLError as exc:
            raise ValueError(f"Failed to parse YAML config '{filename}'. Please check indentation.") from exc


def parse_config(filename, config_type):
    """Parse a yaml configuration file.
    Args:
            filename (str): Path to the configuration file
            config_type (str): "simulator" or "target"
    Returns:
            SimulatorConfig or Target
    """
    config_dict = _load_yaml(filename)
    if config_dict is None:
        config_dict = {}
    config_dict = _require_mapping(str(filename), config_dict)
    if config_type == "simulator":
        base_dir = os.path.dirname(os.path.abspath(filename))
        return SimulatorConfig.from_dict(config_dict.get("simulator"), base_dir=base_dir)
    if config_type == "target":
        return Target.from_dict(config_dict)
    raise ValueError("Invalid config type: {}".format(config_type))
