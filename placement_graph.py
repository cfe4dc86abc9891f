"""Placed dataflow graphs and their dependency index."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Sequence, Set, Tuple

CONTROL_MARKER = "^"
SLOT_SEPARATOR = ":"


class GraphStructureError(ValueError):
    """Raised when a placed graph references nodes or devices that do not exist."""


class CyclicDependencyError(GraphStructureError):
    """Raised when the dependency graph of a target is not acyclic."""

    def __init__(self, message: str, stuck: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.stuck = tuple(stuck)


@dataclass(frozen=True)
class Node:
    name: str
    device: str
    inputs: Tuple[str, ...] = ()
    attr: Mapping[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Node({self.name},dev={self.device},inputs={len(self.inputs)})"

    @classmethod
    def from_dict(cls, node_dict: Dict[str, object]) -> "Node":
        if not isinstance(node_dict, dict):
            raise GraphStructureError(f"node entries must be mappings (got {node_dict!r})")
        try:
            name = node_dict["name"]
            device = node_dict["device"]
        except KeyError as exc:
            raise GraphStructureError(f"node entry {node_dict!r} is missing field {exc.args[0]!r}") from exc
        if not isinstance(name, str) or not name:
            raise GraphStructureError(f"node names must be non-empty strings (got {name!r})")
        if not isinstance(device, str):
            raise GraphStructureError(f"node '{name}': device must be a string (got {device!r})")
        inputs = node_dict.get("inputs") or []
        if not isinstance(inputs, (list, tuple)):
            raise GraphStructureError(f"node '{name}': inputs must be a list of references")
        attr = node_dict.get("attr") or {}
        if not isinstance(attr, dict):
            raise GraphStructureError(f"node '{name}': attr must be a mapping")
        return cls(
            name=name,
            device=device,
            inputs=tuple(str(ref) for ref in inputs),
            attr=dict(attr),
        )


@dataclass(frozen=True)
class Target:
    """An ordered node list together with the devices it is placed on."""

    nodes: Tuple[Node, ...]
    devices: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "devices", tuple(self.devices))

    def __len__(self) -> int:
        return len(self.nodes)

    def with_placement(self, placement: Mapping[str, str]) -> "Target":
        """Return a copy with the nodes named in ``placement`` moved to new devices."""
        known = {node.name for node in self.nodes}
        unknown = [name for name in placement if name not in known]
        if unknown:
            raise GraphStructureError(f"placement names unknown nodes: {', '.join(sorted(unknown))}")
        nodes = tuple(
            replace(node, device=str(placement[node.name])) if node.name in placement else node
            for node in self.nodes
        )
        return Target(nodes=nodes, devices=self.devices)

    @classmethod
    def from_dict(cls, target_dict: Dict[str, object]) -> "Target":
        if not isinstance(target_dict, dict):
            raise GraphStructureError("target must be a mapping with 'devices' and 'nodes'")
        devices = target_dict.get("devices")
        nodes = target_dict.get("nodes")
        if not isinstance(devices, list) or not devices:
            raise GraphStructureError("target.devices must be a non-empty list")
        if not isinstance(nodes, list):
            raise GraphStructureError("target.nodes must be a list")
        return cls(
            nodes=tuple(Node.from_dict(entry) for entry in nodes),
            devices=tuple(str(device) for device in devices),
        )


def normalize_dependency(reference: str) -> str:
    """Return the producer name a dependency reference points at.

    ``^name`` is a control dependency and ``name:1`` names an output slot of
    ``name``; both reduce to plain ``name``.
    """
    if reference.startswith(CONTROL_MARKER):
        return reference[len(CONTROL_MARKER):]
    head, sep, _ = reference.partition(SLOT_SEPARATOR)
    return head if sep else reference


class GraphIndex:
    """Index-based adjacency of a target's dependency graph.

    ``predecessors[i]`` holds the nodes that node ``i`` waits for and
    ``successors[i]`` the nodes waiting for node ``i``. Duplicate references
    to one producer collapse into a single edge.
    """

    def __init__(
        self,
        name_to_index: Dict[str, int],
        device_to_index: Dict[str, int],
        device_of: List[int],
        predecessors: List[List[int]],
        successors: List[List[int]],
    ) -> None:
        self.name_to_index = name_to_index
        self.device_to_index = device_to_index
        self.device_of = device_of
        self.predecessors = predecessors
        self.successors = successors

    def __len__(self) -> int:
        return len(self.predecessors)

    @classmethod
    def build(cls, target: Target) -> "GraphIndex":
        nodes = target.nodes
        name_to_index: Dict[str, int] = {}
        for i, node in enumerate(nodes):
            if node.name in name_to_index:
                raise GraphStructureError(f"duplicate node name '{node.name}'")
            name_to_index[node.name] = i
        device_to_index = {device: i for i, device in enumerate(target.devices)}

        device_of: List[int] = []
        predecessors: List[List[int]] = []
        successors: List[List[int]] = [[] for _ in nodes]
        for i, node in enumerate(nodes):
            device_id = device_to_index.get(node.device)
            if device_id is None:
                raise GraphStructureError(f"node '{node.name}' is placed on unknown device '{node.device}'")
            device_of.append(device_id)

            preds: List[int] = []
            seen: Set[int] = set()
            for reference in node.inputs:
                producer = normalize_dependency(reference)
                producer_id = name_to_index.get(producer)
                if producer_id is None:
                    raise GraphStructureError(
                        f"node '{node.name}' depends on unknown node '{producer}' (reference {reference!r})"
                    )
                if producer_id in seen:
                    continue
                seen.add(producer_id)
                preds.append(producer_id)
                successors[producer_id].append(i)
            predecessors.append(preds)

        return cls(name_to_index, device_to_index, device_of, predecessors, successors)

    def sources(self) -> List[int]:
        """Indices of nodes without predecessors, in input order."""
        return [i for i, preds in enumerate(self.predecessors) if not preds]
