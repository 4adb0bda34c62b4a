# cache.py
import collections
import enum


class CacheConfigError(ValueError):
    """Raised when a cache configuration cannot be built."""


class AddressRangeError(ValueError):
    """Raised when an access address does not fit the configured address width."""


class Operation(enum.Enum):
    READ = "R"
    WRITE = "W"

    def __str__(self):
        return self.value


class Prediction(enum.Enum):
    NONE = "none"
    MRU = "mru"
    MULTI_COLUMN = "multi-column"


HIT = "hit"
VICTIM_HIT = "victim-hit"
MEMORY_MISS = "memory-miss"

Access = collections.namedtuple("Access", ["seq", "op", "address"])
DecodedAddress = collections.namedtuple("DecodedAddress", ["tag", "set_index", "offset"])
EvictedBlock = collections.namedtuple("EvictedBlock", ["tag", "set_index", "dirty"])


class Outcome(collections.namedtuple(
        "Outcome",
        ["hit", "victim_hit", "first_hit", "scan_length", "evicted",
         "set_index", "tag", "way", "classified", "victim_displaced", "writeback"],
        defaults=(False, False, 0, None, None, None, None, False, None, None))):
    """
    Result of a single access.
    `evicted` is the valid block the primary cache gave up (dirty=True means a
    write-back obligation), `writeback` is the dirty block that left the
    hierarchy for memory, if any.
    """
    __slots__ = ()

    @property
    def kind(self):
        if self.victim_hit:
            return VICTIM_HIT
        return HIT if self.hit else MEMORY_MISS

    @property
    def non_first_hit(self):
        return self.classified and not self.first_hit


def is_power_of_two(value):
    return isinstance(value, int) and value > 0 and value & (value - 1) == 0


def _positive_int(value):
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class CacheConfig:
    """
    Geometry of one simulated cache plus the optional victim buffer and
    way-prediction scheme composed around it.
    """

    def __init__(self, size_bytes=256 * 1024, block_size=32, associativity=4,
                 address_width=32, victim_entries=0, prediction=Prediction.NONE,
                 columns=None):
        self.size_bytes = size_bytes
        self.block_size = block_size
        self.associativity = associativity
        self.address_width = address_width
        self.victim_entries = victim_entries
        try:
            self.prediction = Prediction(prediction)
        except ValueError:
            raise CacheConfigError(f"unknown prediction scheme {prediction!r}") from None
        self.columns = columns

    @classmethod
    def from_dict(cls, cfg):
        return cls(
            size_bytes=cfg.get("size_bytes", 256 * 1024),
            block_size=cfg.get("block_size_bytes", 32),
            associativity=cfg.get("associativity", 4),
            address_width=cfg.get("address_width", 32),
            victim_entries=cfg.get("victim_entries", 0),
            prediction=cfg.get("prediction", "none"),
            columns=cfg.get("columns"),
        )

    def to_dict(self):
        return {
            "size_bytes": self.size_bytes,
            "block_size_bytes": self.block_size,
            "associativity": self.associativity,
            "address_width": self.address_width,
            "victim_entries": self.victim_entries,
            "prediction": self.prediction.value,
            "columns": self.columns,
        }

    def replace(self, **changes):
        params = {
            "size_bytes": self.size_bytes,
            "block_size": self.block_size,
            "associativity": self.associativity,
            "address_width": self.address_width,
            "victim_entries": self.victim_entries,
            "prediction": self.prediction,
            "columns": self.columns,
        }
        params.update(changes)
        return CacheConfig(**params)

    @property
    def num_blocks(self):
        return self.size_bytes // self.block_size

    @property
    def num_sets(self):
        return self.size_bytes // (self.block_size * self.associativity)

    def validate(self):
        """Raise CacheConfigError unless the geometry describes a buildable cache."""
        for name in ("size_bytes", "block_size", "associativity", "address_width"):
            if not _positive_int(getattr(self, name)):
                raise CacheConfigError(f"{name} must be a positive integer, got {getattr(self, name)!r}")
        if not is_power_of_two(self.block_size):
            raise CacheConfigError(f"block size {self.block_size} is not a power of two")
        if not is_power_of_two(self.associativity):
            raise CacheConfigError(f"associativity {self.associativity} is not a power of two")
        if self.size_bytes % (self.block_size * self.associativity):
            raise CacheConfigError(
                f"cache size {self.size_bytes} is not a multiple of "
                f"block size x associativity ({self.block_size} x {self.associativity})")
        if not is_power_of_two(self.num_sets):
            raise CacheConfigError(f"set count {self.num_sets} is not a power of two")
        index_bits = (self.block_size * self.num_sets).bit_length() - 1
        if index_bits > self.address_width:
            raise CacheConfigError(
                f"address width {self.address_width} is too narrow for "
                f"{index_bits} offset and index bits")
        if not isinstance(self.victim_entries, int) or self.victim_entries < 0:
            raise CacheConfigError(f"victim_entries must be >= 0, got {self.victim_entries!r}")
        if self.columns is not None and not _positive_int(self.columns):
            raise CacheConfigError(f"columns must be a positive integer, got {self.columns!r}")

    def __eq__(self, other):
        return isinstance(other, CacheConfig) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"CacheConfig(size_bytes={self.size_bytes}, block_size={self.block_size}, "
                f"associativity={self.associativity}, address_width={self.address_width}, "
                f"victim_entries={self.victim_entries}, prediction={self.prediction.value!r}, "
                f"columns={self.columns})")


class AddressDecoder:
    """
    Splits an address into (tag, set index, offset).
    Block size and set count are checked here once, decode() itself never
    re-validates the geometry.
    """

    def __init__(self, block_size, num_sets, address_width=None):
        if not is_power_of_two(block_size):
            raise CacheConfigError(f"block size {block_size!r} is not a power of two")
        if not is_power_of_two(num_sets):
            raise CacheConfigError(f"set count {num_sets!r} is not a power of two")
        self.block_size = block_size
        self.num_sets = num_sets
        self.offset_bits = block_size.bit_length() - 1
        self.index_bits = num_sets.bit_length() - 1
        self.address_limit = 1 << address_width if address_width else None

    def decode(self, address):
        if address < 0 or (self.address_limit is not None and address >= self.address_limit):
            raise AddressRangeError(f"address {address:#x} outside the configured address width")
        offset = address & (self.block_size - 1)
        set_index = (address >> self.offset_bits) & (self.num_sets - 1)
        tag = address >> (self.offset_bits + self.index_bits)
        return DecodedAddress(tag, set_index, offset)


class Way:
    __slots__ = ("valid", "dirty", "tag", "recency")

    def __init__(self):
        self.valid = False
        self.dirty = False
        self.tag = 0
        self.recency = 0

    def __repr__(self):
        return f"Way(valid={self.valid}, dirty={self.dirty}, tag={self.tag:#x}, recency={self.recency})"


class ReplacementSet:
    """
    One set of ways with LRU replacement.
    Every touch stamps the way with the next value of a per-set counter, so
    recency values are unique and the LRU way is the smallest stamp.
    """

    def __init__(self, associativity):
        self.ways = [Way() for _ in range(associativity)]
        self.clock = 0

    def find(self, tag):
        for index, way in enumerate(self.ways):
            if way.valid and way.tag == tag:
                return index
        return None

    def matches(self, index, tag):
        way = self.ways[index]
        return way.valid and way.tag == tag

    def touch(self, index, dirty=False):
        self.clock += 1
        way = self.ways[index]
        way.recency = self.clock
        if dirty:
            way.dirty = True

    def victim(self):
        """Way to fill on a miss: the first invalid way, else the least recently used one."""
        for index, way in enumerate(self.ways):
            if not way.valid:
                return index
        return min(range(len(self.ways)), key=lambda i: self.ways[i].recency)

    def install(self, index, tag, dirty):
        """Replace way `index` and return the (tag, dirty) it held, or None if it was empty."""
        way = self.ways[index]
        previous = (way.tag, way.dirty) if way.valid else None
        way.valid = True
        way.tag = tag
        way.dirty = dirty
        self.touch(index)
        return previous

    def valid_count(self):
        return sum(1 for way in self.ways if way.valid)


class PrimaryCache:
    """
    Set-associative, write-allocate, write-back cache with LRU replacement.
    access() runs a whole lookup; the decode/find/hit/miss steps are public so
    the victim buffer and the way predictors can drive them individually.
    """

    def __init__(self, config: CacheConfig):
        config.validate()
        self.config = config
        self.decoder = AddressDecoder(config.block_size, config.num_sets, config.address_width)
        self.sets = [ReplacementSet(config.associativity) for _ in range(config.num_sets)]

    def decode(self, address):
        return self.decoder.decode(address)

    def find(self, set_index, tag):
        return self.sets[set_index].find(tag)

    def matches(self, set_index, way, tag):
        return self.sets[set_index].matches(way, tag)

    def hit(self, decoded, way, op):
        self.sets[decoded.set_index].touch(way, dirty=op is Operation.WRITE)
        return Outcome(hit=True, set_index=decoded.set_index, tag=decoded.tag, way=way)

    def fill_way(self, set_index):
        return self.sets[set_index].victim()

    def install(self, decoded, way, dirty):
        previous = self.sets[decoded.set_index].install(way, decoded.tag, dirty)
        if previous is None:
            return None
        return EvictedBlock(previous[0], decoded.set_index, previous[1])

    def miss(self, decoded, op):
        way = self.fill_way(decoded.set_index)
        evicted = self.install(decoded, way, op is Operation.WRITE)
        writeback = evicted if evicted is not None and evicted.dirty else None
        return Outcome(hit=False, evicted=evicted, set_index=decoded.set_index,
                       tag=decoded.tag, way=way, writeback=writeback)

    def access(self, address, op):
        decoded = self.decode(address)
        way = self.find(decoded.set_index, decoded.tag)
        if way is not None:
            return self.hit(decoded, way, op)
        return self.miss(decoded, op)

    # inspection helpers

    def way(self, set_index, way):
        return self.sets[set_index].ways[way]

    def resident_tags(self, set_index):
        return [way.tag for way in self.sets[set_index].ways if way.valid]

    def valid_blocks(self):
        return sum(s.valid_count() for s in self.sets)
