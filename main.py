# main.py
import argparse
import json
import logging
import os
import sys

from benchmark import (MissLog, SweepRunner, build_engine, experiment_suite, run_trace,
                       save_results)
from cache import AddressRangeError, CacheConfig, CacheConfigError, Prediction
from tracefile import TraceFormatError, discover_traces, load_trace, synthetic_trace
from visualize import plot_first_hit_rates, plot_hit_miss_rate, plot_hit_rates


def load_config(path="config.json"):
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        return json.load(f)


def print_stats(stats, prediction):
    print(f"Accesses          : {stats.accesses}")
    print(f"Reads/Writes      : {stats.reads}/{stats.writes}")
    print(f"Hits              : {stats.hits} ({stats.hit_rate() * 100:.2f}%)")
    print(f"Misses            : {stats.misses} ({stats.miss_rate() * 100:.2f}%)")
    print(f"Write-backs       : {stats.writebacks}")
    if stats.victim_hits:
        print(f"Victim hits       : {stats.victim_hits} ({stats.victim_hit_share() * 100:.2f}% of hits)")
    if prediction is not Prediction.NONE:
        print(f"First-hit rate    : {stats.first_hit_rate() * 100:.2f}%")
        print(f"Non-first hit rate: {stats.non_first_hit_rate() * 100:.2f}%")
    if prediction is Prediction.MULTI_COLUMN:
        print(f"Avg. bit search   : {stats.avg_scan_length():.2f}")


def format_result(result, prediction):
    if result.stats is None:
        return f"    {result.trace:<14} skipped: {result.error}"
    stats = result.stats
    line = f"    {result.trace:<14} hit {stats.hit_rate() * 100:>6.2f}% miss {stats.miss_rate() * 100:>6.2f}%"
    if stats.victim_hits:
        line += f" victim {stats.victim_hit_share() * 100:>5.1f}%"
    if prediction is not Prediction.NONE:
        line += (f" first {stats.first_hit_rate() * 100:>6.2f}%"
                 f" non-first {stats.non_first_hit_rate() * 100:>6.2f}%")
    if prediction is Prediction.MULTI_COLUMN:
        line += f" avg-search {stats.avg_scan_length():.2f}"
    return line


def print_section(title, scenarios, results):
    print(f"\n== {title} ==")
    for scenario in scenarios:
        print(f"  {scenario.label}")
        for result in results:
            if result.scenario == scenario.label:
                print(format_result(result, scenario.config.prediction))


def run_simulation(args, cfg):
    cache_cfg = dict(cfg.get("cache", {}))
    overrides = {
        "size_bytes": args.cache_size,
        "block_size_bytes": args.block_size,
        "associativity": args.associativity,
        "address_width": args.address_width,
        "victim_entries": args.victim,
        "prediction": args.prediction,
        "columns": args.columns,
    }
    cache_cfg.update({k: v for k, v in overrides.items() if v is not None})
    config = CacheConfig.from_dict(cache_cfg)
    engine = build_engine(config)

    trace = load_trace(args.trace)
    if args.miss_log:
        with MissLog(args.miss_log) as miss_log:
            stats = run_trace(engine, trace.accesses, miss_log=miss_log)
    else:
        stats = run_trace(engine, trace.accesses)

    print(f"Trace             : {trace.name}")
    print(f"Cache size        : {config.size_bytes} bytes")
    print(f"Block size        : {config.block_size} bytes ({config.num_blocks} blocks)")
    print(f"Associativity     : {config.associativity}")
    print(f"Victim cache size : {config.victim_entries} entries")
    print(f"Prediction        : {config.prediction.value}")
    print()
    print_stats(stats, config.prediction)
    if args.miss_log:
        print(f"\nMiss log captured at {args.miss_log}")
    if args.plot:
        plot_hit_miss_rate(stats, args.plot)
        print(f"Plot saved to {args.plot}")
    return 0


def run_experiments(args, cfg):
    exp_cfg = cfg.get("experiments", {})
    out_cfg = cfg.get("output", {})
    base = CacheConfig.from_dict(cfg.get("cache", {}))

    if args.traces:
        traces = [load_trace(path) for path in args.traces]
    elif cfg.get("synthetic", {}).get("enabled", False):
        syn = cfg["synthetic"]
        traces = [synthetic_trace(
            num_requests=syn.get("num_requests", 10000),
            working_set_kb=syn.get("working_set_kb", 1024),
            block_size=base.block_size,
            access_pattern=syn.get("access_pattern", "mixed"),
            read_ratio=syn.get("read_ratio", 0.8),
            random_seed=syn.get("random_seed"),
        )]
    else:
        traces = [load_trace(path) for path in discover_traces(exp_cfg.get("trace_dir", "trace"))]
    print(f"Loaded {len(traces)} trace files.")

    threads = args.threads or exp_cfg.get("threads", 4)
    sections = []
    for title, scenarios in experiment_suite(base, exp_cfg):
        results = SweepRunner(traces, scenarios, num_threads=threads).run()
        print_section(title, scenarios, results)
        sections.append((title, results))
        if args.plots:
            slug = title.lower().split(" (")[0].replace(" ", "_").replace("-", "_")
            plot_dir = out_cfg.get("plots_dir", "results/plots")
            plot_hit_rates(title, results, os.path.join(plot_dir, f"{slug}_hit_rate.png"))
            if scenarios[0].config.prediction is not Prediction.NONE:
                plot_first_hit_rates(title, results, os.path.join(plot_dir, f"{slug}_first_hit.png"))

    path = save_results(sections, out_cfg)
    print(f"\nResults saved to: {path}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="cache-lab",
                                     description="LRU cache simulator with victim buffer and way prediction")
    parser.add_argument("--config", default="config.json", help="JSON configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="run a single simulation with custom parameters")
    sim.add_argument("--trace", required=True, help="trace file to replay")
    sim.add_argument("--cache-size", type=int, help="total cache capacity in bytes")
    sim.add_argument("--block-size", type=int, help="block size in bytes")
    sim.add_argument("--associativity", type=int, help="ways per set (1 = direct-mapped)")
    sim.add_argument("--address-width", type=int, help="address width in bits")
    sim.add_argument("--victim", type=int, help="victim buffer entries (0 = none)")
    sim.add_argument("--prediction", choices=[p.value for p in Prediction], help="way prediction scheme")
    sim.add_argument("--columns", type=int, help="multi-column predictor columns per set")
    sim.add_argument("--miss-log", help="file recording every missed reference")
    sim.add_argument("--plot", help="save a hit/miss pie chart here")

    exp = sub.add_parser("experiments", help="run the full experiment suite")
    exp.add_argument("--trace", dest="traces", action="append", default=[],
                     help="trace file (repeatable); defaults to every *.trace under the trace directory")
    exp.add_argument("--threads", type=int, help="worker threads")
    exp.add_argument("--plots", action="store_true", help="save hit-rate plots per section")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    cfg = load_config(args.config)
    try:
        if args.command == "simulate":
            return run_simulation(args, cfg)
        return run_experiments(args, cfg)
    except CacheConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except AddressRangeError as exc:
        print(f"Trace rejected: {exc}", file=sys.stderr)
        return 1
    except (TraceFormatError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
