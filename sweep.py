"""Score many candidate placements of one graph in parallel."""

import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence

from tqdm import tqdm

from config import SimulatorConfig
from placement_graph import Target
from profile_lookup import DurationLookup, ProfileTable
from simulate_placement import build_scheduler, report_coverage_gap


def _determine_worker_count(num_jobs: int, max_workers: Optional[int]) -> int:
    cap = max_workers if max_workers is not None else (os.cpu_count() or 1)
    return max(1, min(num_jobs, int(cap)))


def _score_placement(
    target: Target,
    placement: Mapping[str, str],
    sim_config: SimulatorConfig,
    profile: ProfileTable,
) -> int:
    scheduler = build_scheduler(sim_config, profile)
    return scheduler.evaluate(target.with_placement(placement))


def evaluate_placements(
    target: Target,
    placements: Sequence[Mapping[str, str]],
    sim_config: SimulatorConfig,
    max_workers: Optional[int] = None,
    show_progress: bool = False,
) -> List[int]:
    """Return the makespan of ``target`` under each placement, in input order.

    Every placement gets its own scheduler instance; only the profile table
    is shared, and it is loaded once up front. Durations do not depend on
    placement, so any coverage gap is reported once for the whole sweep.
    """
    if not placements:
        return []
    profile = sim_config.build_profile_table()
    if sim_config.report_coverage:
        lookup = DurationLookup(profile, sim_config.replication_factor, sim_config.origin_attr)
        unprofiled = [node.name for node in target.nodes if lookup.duration(node, 0) is None]
        report_coverage_gap(unprofiled, len(target))
    sim_config = replace(sim_config, report_coverage=False)
    worker_count = _determine_worker_count(len(placements), max_workers)
    progress = tqdm(total=len(placements), desc="placements", leave=False) if show_progress else None
    results: Dict[int, int] = {}

    try:
        if worker_count == 1:
            for idx, placement in enumerate(placements):
                results[idx] = _score_placement(target, dict(placement), sim_config, profile)
                if progress is not None:
                    progress.update(1)
        else:
            with ProcessPoolExecutor(max_workers=worker_count) as executor:
                futures = {
                    executor.submit(_score_placement, target, dict(placement), sim_config, profile): idx
                    for idx, placement in enumerate(placements)
                }
                for fut in as_completed(futures):
                    results[futures[fut]] = fut.result()
                    if progress is not None:
                        progress.update(1)
    finally:
        if progress is not None:
            progress.close()

    return [results[idx] for idx in range(len(placements))]
