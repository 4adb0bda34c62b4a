import json

import pytest

import benchmark
from benchmark import (MissLog, Scenario, SweepRunner, build_engine, experiment_suite,
                       predictor_configs, run_trace, save_results, victim_configs)
from cache import Access, CacheConfig, Operation, Prediction, PrimaryCache
from predictors import MruPredictor, MultiColumnPredictor
from tracefile import Trace
from victim import VictimCache

R = Operation.READ
W = Operation.WRITE


def make_trace(addresses, name="t"):
    return Trace(name, tuple(Access(i, op, addr) for i, (op, addr) in enumerate(addresses)))


@pytest.mark.parametrize("kwargs, engine_type", [
    ({}, PrimaryCache),
    ({"victim_entries": 4}, VictimCache),
    ({"prediction": "mru"}, MruPredictor),
    ({"prediction": "multi-column", "victim_entries": 2}, MultiColumnPredictor),
])
def test_build_engine_composes_requested_parts(make_config, kwargs, engine_type):
    assert isinstance(build_engine(make_config(**kwargs)), engine_type)


def test_multi_column_engine_sits_on_victim_cache(make_config):
    engine = build_engine(make_config(prediction="multi-column", victim_entries=2, columns=3))
    assert isinstance(engine.cache, VictimCache)
    assert engine.columns == 3


def test_run_trace_writes_miss_log(make_config, tmp_path):
    trace = make_trace([(R, 0x00), (R, 0x40), (R, 0x00), (W, 0x00)])
    engine = build_engine(make_config(size_bytes=64, associativity=1, victim_entries=1))
    path = str(tmp_path / "logs" / "misses.log")
    with MissLog(path) as miss_log:
        stats = run_trace(engine, trace.accesses, miss_log=miss_log)

    assert miss_log.count == 3
    with open(path) as f:
        lines = [line.strip() for line in f if not line.startswith("#")]
    assert lines == ["0 R 0x0 memory-miss", "1 R 0x40 memory-miss", "2 R 0x0 victim-hit"]
    assert stats.hits == 2 and stats.victim_hits == 1


def test_sweep_skips_bad_configs_and_runs(make_config):
    traces = [make_trace([(R, 0x00), (R, 0x00)], "small"),
              make_trace([(R, 0x00), (R, 1 << 20)], "wide")]
    scenarios = [
        Scenario("good", make_config(address_width=16)),
        Scenario("bad-block", make_config(block_size=24)),
    ]
    results = SweepRunner(traces, scenarios, num_threads=3).run()

    assert [(r.scenario, r.trace) for r in results] == [
        ("good", "small"), ("good", "wide"), ("bad-block", "small"), ("bad-block", "wide")]
    assert results[0].stats.hits == 1 and results[0].error is None
    assert results[1].stats is None and "address" in results[1].error
    assert all(r.stats is None for r in results[2:])


def test_sweep_reraises_unexpected_worker_errors(make_config, monkeypatch):
    def broken_replay(engine, accesses, stats=None, miss_log=None):
        raise RuntimeError("replay blew up")

    monkeypatch.setattr(benchmark, "run_trace", broken_replay)
    traces = [make_trace([(R, 0x00)], "a"), make_trace([(R, 0x20)], "b")]
    runner = SweepRunner(traces, [Scenario("dm", make_config())], num_threads=2)
    with pytest.raises(RuntimeError, match="replay blew up"):
        runner.run()


def test_sweep_matches_serial_replay(make_config):
    trace = make_trace([(R, (i * 37) % 4096 * 8) for i in range(500)])
    scenarios = predictor_configs(make_config(), [1, 2, 4], Prediction.MRU)
    results = SweepRunner([trace], scenarios, num_threads=2).run()
    for scenario, result in zip(scenarios, results):
        serial = run_trace(build_engine(scenario.config), trace.accesses)
        assert result.stats.finalize() == serial.finalize()


def test_experiment_suite_sections():
    suite = experiment_suite(CacheConfig(prediction="mru", victim_entries=8))
    titles = [title for title, _ in suite]
    assert titles == ["Direct-Mapped", "Set-Associative Sweep", "Block Size Sweep (4-way)",
                      "Victim Cache on DM", "MRU Prediction", "Multi-column Prediction"]
    sections = dict(suite)
    assert sections["Direct-Mapped"][0].config.associativity == 1
    assert [s.label for s in sections["Set-Associative Sweep"]] == [
        "2-way SA", "4-way SA", "8-way SA", "16-way SA"]
    assert all(s.config.prediction is Prediction.NONE for s in sections["Block Size Sweep (4-way)"])
    assert all(s.config.victim_entries == 0 for s in sections["MRU Prediction"])
    assert sections["Multi-column Prediction"][0].label == "Multi-Column 2-way"


def test_victim_configs_are_direct_mapped():
    scenarios = victim_configs(CacheConfig(), [4, 8])
    assert [s.label for s in scenarios] == ["DM + Victim(4)", "DM + Victim(8)"]
    assert all(s.config.associativity == 1 for s in scenarios)


def test_save_results(make_config, tmp_path):
    trace = make_trace([(R, 0x00)])
    results = SweepRunner([trace], [Scenario("dm", make_config())], num_threads=1).run()
    path = save_results([("Direct-Mapped", results)], {"results_dir": str(tmp_path)})
    with open(path) as f:
        data = json.load(f)
    assert data[0]["section"] == "Direct-Mapped"
    assert data[0]["results"][0]["stats"]["misses"] == 1
