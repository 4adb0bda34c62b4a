# visualize.py
import os

import matplotlib.pyplot as plt
import numpy as np


def _prepare(outpath):
    parent = os.path.dirname(outpath)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _grouped_bars(results, value, title, ylabel, outpath):
    scenarios = list(dict.fromkeys(r.scenario for r in results))
    traces = list(dict.fromkeys(r.trace for r in results))
    values = {(r.scenario, r.trace): value(r.stats) for r in results if r.stats is not None}

    _prepare(outpath)
    x = np.arange(len(scenarios))
    width = 0.8 / max(1, len(traces))
    plt.figure(figsize=(max(6, 1.2 * len(scenarios)), 4))
    for i, trace in enumerate(traces):
        heights = [values.get((s, trace), 0.0) * 100.0 for s in scenarios]
        plt.bar(x + i * width, heights, width, label=trace)
    plt.xticks(x + width * (len(traces) - 1) / 2, scenarios, rotation=30, ha="right")
    plt.ylim(0, 100)
    plt.title(title)
    plt.ylabel(ylabel)
    plt.grid(True, axis="y")
    plt.legend(fontsize="small")
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()


def plot_hit_rates(title, results, outpath):
    _grouped_bars(results, lambda s: s.hit_rate(), f"{title}: hit rate", "Hit rate (%)", outpath)


def plot_first_hit_rates(title, results, outpath):
    _grouped_bars(results, lambda s: s.first_hit_rate(), f"{title}: first-hit rate",
                  "First-hit rate (%)", outpath)


def plot_hit_miss_rate(stats, outpath):
    _prepare(outpath)
    plt.figure(figsize=(4, 4))
    labels = ['Hit', 'Victim hit', 'Miss']
    sizes = [stats.hits - stats.victim_hits, stats.victim_hits, stats.misses]
    if not any(sizes):
        sizes = [0, 0, 1]
    plt.pie(sizes, labels=labels, autopct='%1.1f%%')
    plt.title("Cache Hit/Miss Rate")
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()
