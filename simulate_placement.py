import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from heapq import heappush, heappop
from collections import deque
from typing import Deque, Dict, List, NamedTuple, Optional, Tuple

from graphviz import Digraph

import graphviz_async
from placement_graph import CyclicDependencyError, GraphIndex, Target
from config import SimulatorConfig
from profile_lookup import DurationLookup, ProfileTable
from util import log_message, summarize_names

debug = False

_DEVICE_COLORS = (
    "lightblue",
    "lightcoral",
    "palegreen",
    "khaki",
    "plum",
    "lightsalmon",
    "lightcyan",
    "wheat",
)


class Scheduler(ABC):
    """Estimates how long a placed graph takes to run."""

    @abstractmethod
    def evaluate(self, target: Target) -> int:
        ...


class Task(NamedTuple):
    finish: int
    seq: int
    node: int


@dataclass(frozen=True)
class SimulationResult:
    makespan: int
    start_times: Tuple[int, ...]
    finish_times: Tuple[int, ...]
    device_busy: Tuple[int, ...]
    unprofiled: Tuple[str, ...]

    @property
    def profiled_fraction(self) -> float:
        total = len(self.finish_times)
        if total == 0:
            return 1.0
        return 1.0 - len(self.unprofiled) / total


def report_coverage_gap(unprofiled: List[str], total: int) -> None:
    if not unprofiled:
        return
    log_message(
        f"{len(unprofiled)}/{total} nodes have no profile entry and were costed as 0: "
        f"{summarize_names(unprofiled)}",
        category="coverage",
    )


def _raise_stuck(target: Target, outstanding: List[int]) -> None:
    stuck = [target.nodes[i].name for i, count in enumerate(outstanding) if count > 0]
    raise CyclicDependencyError(
        f"dependency cycle: {len(stuck)} node(s) never became ready ({summarize_names(stuck)})",
        stuck=stuck,
    )


class EventDrivenSimulator(Scheduler):
    """Replays a placed graph against per-device timelines.

    Ready nodes are dispatched in the order they became ready. Each device
    runs its nodes one at a time in dispatch order, so a node starts at the
    later of the current clock and the time its device frees up. The clock
    only moves when the in-flight task with the earliest finish completes.
    Nodes without a profile entry cost 0.
    """

    def __init__(self, lookup: DurationLookup, report_coverage: bool = True) -> None:
        self.lookup = lookup
        self.report_coverage = report_coverage

    def evaluate(self, target: Target) -> int:
        return self.simulate(target).makespan

    def simulate(self, target: Target) -> SimulationResult:
        nodes = target.nodes
        index = GraphIndex.build(target)
        if debug:
            print("Simulating graph of {} nodes on {} devices".format(len(nodes), len(target.devices)))

        outstanding = [len(preds) for preds in index.predecessors]
        ready_list: Deque[int] = deque(index.sources())
        event_queue: List[Task] = []
        device_available = [0] * len(target.devices)
        start_times = [0] * len(nodes)
        finish_times = [0] * len(nodes)
        device_busy = [0] * len(target.devices)
        unprofiled: List[str] = []
        time = 0
        counter = 0
        completed = 0

        while True:
            # dispatched nodes may still wait behind earlier work on their device
            while ready_list:
                node_id = ready_list.popleft()
                node = nodes[node_id]
                device = index.device_of[node_id]
                duration = self.lookup.duration(node, device)
                if duration is None:
                    unprofiled.append(node.name)
                    duration = 0
                start = max(device_available[device], time)
                finish = start + duration
                device_available[device] = finish
                device_busy[device] += duration
                start_times[node_id] = start
                finish_times[node_id] = finish
                heappush(event_queue, Task(finish, counter, node_id))
                counter += 1
                if debug:
                    print("{} enqueued at time {} on device {}, finishes at {}".format(node.name, time, node.device, finish))

            if not event_queue:
                break

            task = heappop(event_queue)
            time = task.finish
            completed += 1
            if debug:
                print("{} finished at time {}".format(nodes[task.node].name, time))
            for child in index.successors[task.node]:
                outstanding[child] -= 1
                if outstanding[child] == 0:
                    ready_list.append(child)

        if completed != len(nodes):
            _raise_stuck(target, outstanding)

        if self.report_coverage:
            report_coverage_gap(unprofiled, len(nodes))

        return SimulationResult(
            makespan=time,
            start_times=tuple(start_times),
            finish_times=tuple(finish_times),
            device_busy=tuple(device_busy),
            unprofiled=tuple(unprofiled),
        )


class CriticalPathScheduler(Scheduler):
    """Longest dependency chain, ignoring device contention.

    Gives a lower bound on what :class:`EventDrivenSimulator` reports for
    the same target.
    """

    def __init__(self, lookup: DurationLookup) -> None:
        self.lookup = lookup

    def evaluate(self, target: Target) -> int:
        nodes = target.nodes
        index = GraphIndex.build(target)
        outstanding = [len(preds) for preds in index.predecessors]
        earliest_start = [0] * len(nodes)
        ready_list: Deque[int] = deque(index.sources())
        longest = 0
        visited = 0

        while ready_list:
            node_id = ready_list.popleft()
            visited += 1
            duration = self.lookup.duration(nodes[node_id], index.device_of[node_id]) or 0
            finish = earliest_start[node_id] + duration
            longest = max(longest, finish)
            for child in index.successors[node_id]:
                earliest_start[child] = max(earliest_start[child], finish)
                outstanding[child] -= 1
                if outstanding[child] == 0:
                    ready_list.append(child)

        if visited != len(nodes):
            _raise_stuck(target, outstanding)
        return longest


def visualize_schedule(target: Target, result: SimulationResult) -> Digraph:
    """Build a graphviz view of a simulated schedule, one colour per device."""
    index = GraphIndex.build(target)
    dot = Digraph(comment=f"Schedule (makespan={result.makespan})")
    unprofiled = set(result.unprofiled)

    for node_id, node in enumerate(target.nodes):
        device = index.device_of[node_id]
        label = (
            f"{node.name}\n({node.device}, "
            f"{result.start_times[node_id]} -> {result.finish_times[node_id]})"
        )
        if node.name in unprofiled:
            label += "\n[unprofiled]"
        dot.node(
            str(node_id),
            label=label,
            style="filled",
            fillcolor=_DEVICE_COLORS[device % len(_DEVICE_COLORS)],
            shape="box",
        )

    for node_id, children in enumerate(index.successors):
        for child in children:
            dot.edge(str(node_id), str(child))

    return dot


def save_schedule_graph(
    target: Target,
    result: SimulationResult,
    output_folder: str = "output_graph/",
    filename: str = "schedule",
) -> Optional[str]:
    os.makedirs(output_folder, exist_ok=True)
    out_path = os.path.join(output_folder, filename)

    printstr = " | Schedule graph saved to    %s.png" % out_path

    def _render_graph() -> None:
        dot = visualize_schedule(target, result)
        dot.render(out_path, format="png", cleanup=True)

    graphviz_async.submit(f"{filename}.png", _render_graph, print_message=printstr)
    return out_path + ".png"


def device_utilization(target: Target, result: SimulationResult) -> Dict[str, float]:
    """Fraction of the makespan each device spends running nodes."""
    if result.makespan == 0:
        return {device: 0.0 for device in target.devices}
    return {
        device: busy / result.makespan
        for device, busy in zip(target.devices, result.device_busy)
    }


def build_scheduler(sim_config: SimulatorConfig, profile: Optional[ProfileTable] = None) -> Scheduler:
    """Construct the scheduler named by ``sim_config``.

    ``profile`` skips reloading the table when the caller already holds it.
    """
    if profile is None:
        profile = sim_config.build_profile_table()
    lookup = DurationLookup(profile, sim_config.replication_factor, sim_config.origin_attr)
    if sim_config.scheduler == "critical_path":
        return CriticalPathScheduler(lookup)
    return EventDrivenSimulator(lookup, report_coverage=sim_config.report_coverage)
