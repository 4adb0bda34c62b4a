# benchmark.py
import collections
import json
import logging
import os
import threading
import time

from cache import (AddressRangeError, CacheConfigError, HIT, Prediction, PrimaryCache)
from predictors import MruPredictor, MultiColumnPredictor
from stats import AccessStatistics
from victim import VictimBuffer, VictimCache

logger = logging.getLogger(__name__)

Scenario = collections.namedtuple("Scenario", ["label", "config"])
TraceResult = collections.namedtuple("TraceResult", ["scenario", "trace", "stats", "error"])


def build_engine(config):
    """
    Compose the engine a configuration asks for: the primary cache, the victim
    buffer around it when victim_entries > 0, and the way predictor on top.
    """
    engine = PrimaryCache(config)
    if config.victim_entries:
        engine = VictimCache(engine, VictimBuffer(config.victim_entries))
    if config.prediction is Prediction.MRU:
        return MruPredictor(engine)
    if config.prediction is Prediction.MULTI_COLUMN:
        return MultiColumnPredictor(engine, config.columns)
    return engine


def run_trace(engine, accesses, stats=None, miss_log=None):
    """Replay `accesses` in order. Every access that is not a primary hit goes to `miss_log`."""
    if stats is None:
        stats = AccessStatistics()
    for access in accesses:
        outcome = engine.access(access.address, access.op)
        stats.record(access.op, outcome)
        if miss_log is not None and outcome.kind != HIT:
            miss_log.record(access, outcome)
    return stats


class MissLog:
    """Writes one `seq op address kind` line per missed reference."""

    def __init__(self, path):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self.path = path
        self.count = 0
        self._file = open(path, "w")
        self._file.write("# seq op address kind\n")

    def record(self, access, outcome):
        self._file.write(f"{access.seq} {access.op} {access.address:#x} {outcome.kind}\n")
        self.count += 1

    def close(self):
        self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


# scenario families of the experiment suite

def direct_mapped(base):
    cfg = base.replace(associativity=1, prediction=Prediction.NONE, victim_entries=0)
    return Scenario("Direct-Mapped", cfg)


def set_associative(base, ways):
    return [
        Scenario(f"{assoc}-way SA",
                 base.replace(associativity=assoc, prediction=Prediction.NONE, victim_entries=0))
        for assoc in ways
    ]


def block_sizes(base, sizes):
    return [Scenario(f"Block {block}B", base.replace(block_size=block)) for block in sizes]


def victim_configs(base, entries):
    return [
        Scenario(f"DM + Victim({size})", base.replace(associativity=1, victim_entries=size))
        for size in entries
    ]


def predictor_configs(base, ways, prediction):
    prefix = {
        Prediction.NONE: "No-Predict",
        Prediction.MRU: "MRU",
        Prediction.MULTI_COLUMN: "Multi-Column",
    }[prediction]
    return [
        Scenario(f"{prefix} {assoc}-way",
                 base.replace(associativity=assoc, prediction=prediction, victim_entries=0))
        for assoc in ways
    ]


def experiment_suite(base, exp_cfg=None):
    """Titled scenario lists, in the order the suite reports them."""
    exp_cfg = exp_cfg or {}
    ways = exp_cfg.get("associativities", [2, 4, 8, 16])
    base_plain = base.replace(prediction=Prediction.NONE, victim_entries=0)
    return [
        ("Direct-Mapped", [direct_mapped(base_plain)]),
        ("Set-Associative Sweep", set_associative(base_plain, ways)),
        ("Block Size Sweep (4-way)",
         block_sizes(base_plain.replace(associativity=4),
                     exp_cfg.get("block_sizes", [8, 16, 32, 64, 128, 256]))),
        ("Victim Cache on DM",
         victim_configs(base_plain, exp_cfg.get("victim_entries", [4, 8, 16, 32]))),
        ("MRU Prediction", predictor_configs(base_plain, ways, Prediction.MRU)),
        ("Multi-column Prediction", predictor_configs(base_plain, ways, Prediction.MULTI_COLUMN)),
    ]


class SweepRunner:
    """
    Replays every scenario against every trace.
    Jobs are independent (one fresh engine each) and are spread over worker
    threads; a configuration or address error skips the job, not the sweep.
    """

    def __init__(self, traces, scenarios, num_threads=4):
        self.traces = traces
        self.scenarios = scenarios
        self.num_threads = max(1, num_threads)
        self.results_lock = threading.Lock()
        self.results = {}
        self.failures = []

    def _run_job(self, scenario, trace):
        try:
            engine = build_engine(scenario.config)
        except CacheConfigError as exc:
            logger.warning("Skipping %s: %s", scenario.label, exc)
            return TraceResult(scenario.label, trace.name, None, str(exc))
        try:
            stats = run_trace(engine, trace.accesses)
        except AddressRangeError as exc:
            logger.warning("Skipping %s on %s: %s", scenario.label, trace.name, exc)
            return TraceResult(scenario.label, trace.name, None, str(exc))
        logger.debug("%s on %s: hit rate %.4f", scenario.label, trace.name, stats.hit_rate())
        return TraceResult(scenario.label, trace.name, stats, None)

    def _worker(self, jobs):
        local_results = {}
        try:
            for index, scenario, trace in jobs:
                local_results[index] = self._run_job(scenario, trace)
        except Exception as exc:
            with self.results_lock:
                self.failures.append(exc)
            return
        with self.results_lock:
            self.results.update(local_results)

    def run(self):
        jobs = []
        for scenario in self.scenarios:
            for trace in self.traces:
                jobs.append((len(jobs), scenario, trace))
        self.results = {}
        self.failures = []
        threads = []
        start = time.time()
        for n in range(min(self.num_threads, len(jobs))):
            t = threading.Thread(target=self._worker, args=(jobs[n::self.num_threads],))
            t.start()
            threads.append(t)
        for t in threads:
            t.join()
        if self.failures:
            # a worker died: surface its error instead of a partial result set
            raise self.failures[0]
        logger.info("Ran %d jobs in %.2fs", len(jobs), time.time() - start)
        return [self.results[index] for index in range(len(jobs))]


def results_to_dict(sections):
    """Flatten [(title, [TraceResult, ...]), ...] for JSON output."""
    out = []
    for title, results in sections:
        out.append({
            "section": title,
            "results": [
                {
                    "scenario": r.scenario,
                    "trace": r.trace,
                    "stats": r.stats.finalize() if r.stats is not None else None,
                    "error": r.error,
                }
                for r in results
            ],
        })
    return out


def save_results(sections, out_cfg):
    results_dir = out_cfg.get("results_dir", "results")
    os.makedirs(results_dir, exist_ok=True)
    path = os.path.join(results_dir, out_cfg.get("results_file", "results.json"))
    with open(path, "w") as f:
        json.dump(results_to_dict(sections), f, indent=2)
    return path
