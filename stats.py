# stats.py
from cache import Operation


def _ratio(numerator, denominator):
    return numerator / denominator if denominator else 0.0


class AccessStatistics:
    """
    Accumulates per-access outcomes of one (configuration, trace) run.
    Accesses with no multi-column candidate (scan length 0) are left out of
    the average scan length.
    """

    def __init__(self):
        self.accesses = 0
        self.reads = 0
        self.writes = 0
        self.hits = 0
        self.victim_hits = 0
        self.first_hits = 0
        self.non_first_hits = 0
        self.scan_length_total = 0
        self.scanned_accesses = 0
        self.writebacks = 0

    @property
    def misses(self):
        return self.accesses - self.hits

    def record(self, op, outcome):
        self.accesses += 1
        if op is Operation.WRITE:
            self.writes += 1
        else:
            self.reads += 1
        if outcome.hit:
            self.hits += 1
        if outcome.victim_hit:
            self.victim_hits += 1
        if outcome.first_hit:
            self.first_hits += 1
        elif outcome.non_first_hit:
            self.non_first_hits += 1
        if outcome.scan_length:
            self.scan_length_total += outcome.scan_length
            self.scanned_accesses += 1
        if outcome.writeback is not None:
            self.writebacks += 1

    def hit_rate(self):
        return _ratio(self.hits, self.accesses)

    def miss_rate(self):
        return _ratio(self.misses, self.accesses)

    def victim_hit_share(self):
        return _ratio(self.victim_hits, self.hits)

    def first_hit_rate(self):
        return _ratio(self.first_hits, self.first_hits + self.non_first_hits)

    def non_first_hit_rate(self):
        return _ratio(self.non_first_hits, self.first_hits + self.non_first_hits)

    def avg_scan_length(self):
        return _ratio(self.scan_length_total, self.scanned_accesses)

    def finalize(self):
        return {
            "accesses": self.accesses,
            "reads": self.reads,
            "writes": self.writes,
            "hits": self.hits,
            "misses": self.misses,
            "victim_hits": self.victim_hits,
            "first_hits": self.first_hits,
            "non_first_hits": self.non_first_hits,
            "writebacks": self.writebacks,
            "hit_rate": self.hit_rate(),
            "miss_rate": self.miss_rate(),
            "victim_hit_share": self.victim_hit_share(),
            "first_hit_rate": self.first_hit_rate(),
            "non_first_hit_rate": self.non_first_hit_rate(),
            "avg_scan_length": self.avg_scan_length(),
        }
