import argparse
import sys
import time
from typing import List, Mapping, Optional, Sequence

import yaml

import config
import graphviz_async
from profile_lookup import DurationLookup
from simulate_placement import (
    CriticalPathScheduler,
    EventDrivenSimulator,
    build_scheduler,
    device_utilization,
    save_schedule_graph,
)
from sweep import evaluate_placements
from util import flush_log_queue, log_message, relpath_display

DEFAULT_OUTPUT_DIR = "output"


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="placesim",
        description="Estimate the makespan of a placed dataflow graph from profiled op timings.",
    )
    parser.add_argument("--config", required=True, help="Path to the simulator configuration file.")
    parser.add_argument("--target", required=True, help="Path to the placed graph (devices + nodes) file.")
    parser.add_argument(
        "--placements",
        help="Optional YAML list of {node: device} mappings to score against the target.",
    )
    parser.add_argument("--workers", type=int, default=None, help="Worker processes for --placements.")
    parser.add_argument("--visualize", action="store_true", help="Render the simulated schedule as PNG.")
    parser.add_argument("--output-dir", default=DEFAULT_OUTPUT_DIR, help="Where rendered artifacts go.")
    return parser.parse_args(argv)


def _load_placements(path: str) -> List[Mapping[str, str]]:
    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f) or []
        except yaml.YAMLError as exc:
            raise ValueError(f"Failed to parse placements file '{path}': {exc}") from exc
    if isinstance(data, dict):
        data = data.get("placements", [])
    if not isinstance(data, list) or not all(isinstance(entry, dict) for entry in data):
        raise ValueError(f"placements file '{path}' must hold a list of node -> device mappings")
    return [{str(k): str(v) for k, v in entry.items()} for entry in data]


def run(args: argparse.Namespace) -> int:
    sim_config = config.parse_config(args.config, "simulator")
    target = config.parse_config(args.target, "target")
    profile = sim_config.build_profile_table()

    start = time.perf_counter()
    scheduler = build_scheduler(sim_config, profile)
    if isinstance(scheduler, EventDrivenSimulator):
        result = scheduler.simulate(target)
        makespan = result.makespan
        lookup = DurationLookup(profile, sim_config.replication_factor, sim_config.origin_attr)
        bound = CriticalPathScheduler(lookup).evaluate(target)
        log_message(f"Critical path bound: {bound}", category="results")
        for device, share in device_utilization(target, result).items():
            log_message(f"  {device}: {share * 100:.1f}% busy", category="results")
        if args.visualize:
            save_schedule_graph(target, result, output_folder=args.output_dir, filename="schedule")
    else:
        if args.visualize:
            log_message("[WARN] --visualize needs the event_driven scheduler; skipping render")
        makespan = scheduler.evaluate(target)
    elapsed = time.perf_counter() - start

    print(f"Makespan: {makespan}")
    log_message(
        f"Evaluated {len(target)} nodes from {relpath_display(args.target)} "
        f"with {sim_config.scheduler} in {elapsed:.3f}s",
        category="results",
    )

    if args.placements:
        placements = _load_placements(args.placements)
        scores = evaluate_placements(target, placements, sim_config, max_workers=args.workers, show_progress=True)
        for idx, score in enumerate(scores):
            print(f"Placement {idx}: {score}")
        if scores:
            best = min(range(len(scores)), key=scores.__getitem__)
            log_message(f"Best placement: #{best} ({scores[best]})", category="results")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_arguments(argv)
    try:
        return run(args)
    except (ValueError, OSError, RuntimeError) as exc:
        print(f"placesim: error: {exc}", file=sys.stderr)
        return 1
    finally:
        graphviz_async.wait_for_all()
        flush_log_queue()
