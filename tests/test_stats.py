from cache import EvictedBlock, Operation, Outcome
from stats import AccessStatistics


def test_empty_statistics_rates_are_zero():
    summary = AccessStatistics().finalize()
    for key in ("hit_rate", "miss_rate", "victim_hit_share", "first_hit_rate",
                "non_first_hit_rate", "avg_scan_length"):
        assert summary[key] == 0.0


def test_record_counts_each_category():
    stats = AccessStatistics()
    stats.record(Operation.READ, Outcome(hit=True, classified=True, first_hit=True, scan_length=1))
    stats.record(Operation.READ, Outcome(hit=True, classified=True, scan_length=3))
    stats.record(Operation.WRITE, Outcome(hit=True, victim_hit=True))
    stats.record(Operation.WRITE, Outcome(hit=False, writeback=EvictedBlock(1, 0, True)))

    summary = stats.finalize()
    assert summary["accesses"] == 4
    assert summary["reads"] == 2 and summary["writes"] == 2
    assert summary["hits"] == 3 and summary["misses"] == 1
    assert summary["victim_hits"] == 1
    assert summary["first_hits"] == 1 and summary["non_first_hits"] == 1
    assert summary["writebacks"] == 1
    assert summary["hit_rate"] == 0.75
    assert summary["victim_hit_share"] == 1 / 3
    assert summary["first_hit_rate"] == 0.5
    assert summary["avg_scan_length"] == 2.0
