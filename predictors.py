# predictors.py
from cache import CacheConfigError

# Fibonacci hashing constant (2^64 / golden ratio)
GOLDEN_RATIO_64 = 0x9E3779B97F4A7C15
MASK_64 = (1 << 64) - 1


def column_hash(tag):
    """Multiplicative hash of a tag, folded to 32 bits. Deterministic across runs."""
    h = (tag * GOLDEN_RATIO_64) & MASK_64
    return (h >> 32) ^ (h & 0xFFFFFFFF)


def default_columns(associativity):
    if associativity <= 1:
        columns = 1
    elif associativity <= 4:
        columns = 2
    elif associativity <= 8:
        columns = 4
    else:
        columns = 8
    return max(1, min(columns, associativity))


class MruPredictor:
    """
    Most-recently-used way prediction.
    Each set remembers the way that last hit or was filled; an access whose
    tag sits in that way is a first hit, a hit anywhere else in the set is a
    non-first hit. Misses are not classified.
    """

    def __init__(self, cache):
        self.cache = cache
        self.guesses = [0] * cache.config.num_sets

    @property
    def config(self):
        return self.cache.config

    def guess(self, set_index):
        return self.guesses[set_index]

    def access(self, address, op):
        decoded = self.cache.decode(address)
        guess = self.guesses[decoded.set_index]
        if self.cache.matches(decoded.set_index, guess, decoded.tag):
            outcome = self.cache.hit(decoded, guess, op)._replace(first_hit=True, classified=True)
        else:
            way = self.cache.find(decoded.set_index, decoded.tag)
            if way is not None:
                outcome = self.cache.hit(decoded, way, op)._replace(classified=True)
            else:
                outcome = self.cache.miss(decoded, op)
        self.guesses[decoded.set_index] = outcome.way
        return outcome

    def reset(self):
        self.guesses = [0] * len(self.guesses)


class MultiColumnPredictor:
    """
    Multi-column way prediction.

    Every set keeps `columns` bit-vectors of width `associativity`. A tag
    hashes to one column; bit w set in that column means a tag of the column
    has been resident in way w. Candidates are scanned in ascending way order,
    each compared candidate counting toward the scan length. Bits accumulate
    until reset(), so several tags sharing a column can leave several
    candidates behind.
    """

    def __init__(self, cache, columns=None):
        self.cache = cache
        self.associativity = cache.config.associativity
        self.columns = columns if columns is not None else default_columns(self.associativity)
        if not isinstance(self.columns, int) or self.columns < 1:
            raise CacheConfigError(f"columns must be a positive integer, got {self.columns!r}")
        self.vectors = [[0] * self.columns for _ in range(cache.config.num_sets)]

    @property
    def config(self):
        return self.cache.config

    def column(self, tag):
        return column_hash(tag) % self.columns

    def bits(self, set_index, tag):
        return self.vectors[set_index][self.column(tag)]

    def candidates(self, set_index, tag):
        bits = self.bits(set_index, tag)
        return [way for way in range(self.associativity) if bits >> way & 1]

    def access(self, address, op):
        decoded = self.cache.decode(address)
        column = self.column(decoded.tag)
        scanned = 0
        for way in self.candidates(decoded.set_index, decoded.tag):
            scanned += 1
            if self.cache.matches(decoded.set_index, way, decoded.tag):
                outcome = self.cache.hit(decoded, way, op)._replace(
                    first_hit=scanned == 1, classified=True, scan_length=scanned)
                break
        else:
            # no lead or a wrong lead: fall back to the full scan
            way = self.cache.find(decoded.set_index, decoded.tag)
            if way is not None:
                outcome = self.cache.hit(decoded, way, op)._replace(
                    classified=True, scan_length=scanned)
            else:
                outcome = self.cache.miss(decoded, op)._replace(scan_length=scanned)
        self.vectors[decoded.set_index][column] |= 1 << outcome.way
        return outcome

    def reset(self, set_index=None):
        if set_index is None:
            self.vectors = [[0] * self.columns for _ in self.vectors]
        else:
            self.vectors[set_index] = [0] * self.columns
