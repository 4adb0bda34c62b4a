# victim.py
from cache import CacheConfigError, EvictedBlock, Operation, Outcome


class VictimEntry:
    __slots__ = ("valid", "dirty", "tag", "set_index", "recency")

    def __init__(self):
        self.valid = False
        self.dirty = False
        self.tag = 0
        self.set_index = 0
        self.recency = 0

    def __repr__(self):
        return (f"VictimEntry(valid={self.valid}, dirty={self.dirty}, tag={self.tag:#x}, "
                f"set_index={self.set_index}, recency={self.recency})")


class VictimBuffer:
    """
    Small fully-associative LRU store for blocks evicted from the primary cache.
    Entries are matched on tag and origin set, recency uses its own counter.
    """

    def __init__(self, capacity):
        if not isinstance(capacity, int) or capacity < 1:
            raise CacheConfigError(f"victim buffer capacity must be >= 1, got {capacity!r}")
        self.entries = [VictimEntry() for _ in range(capacity)]
        self.clock = 0

    @property
    def capacity(self):
        return len(self.entries)

    def __len__(self):
        return sum(1 for entry in self.entries if entry.valid)

    def find(self, tag, set_index):
        for slot, entry in enumerate(self.entries):
            if entry.valid and entry.tag == tag and entry.set_index == set_index:
                return slot
        return None

    def take(self, slot):
        """Remove the entry in `slot` and return it as an EvictedBlock."""
        entry = self.entries[slot]
        block = EvictedBlock(entry.tag, entry.set_index, entry.dirty)
        entry.valid = False
        entry.dirty = False
        return block

    def store(self, slot, block):
        self.clock += 1
        entry = self.entries[slot]
        entry.valid = True
        entry.tag = block.tag
        entry.set_index = block.set_index
        entry.dirty = block.dirty
        entry.recency = self.clock

    def insert(self, block):
        """
        Buffer `block` in a free slot, or over the least recently used entry.
        Returns the entry pushed out of the buffer, if any.
        """
        slot = self._free_slot()
        displaced = None
        if slot is None:
            slot = min(range(len(self.entries)), key=lambda i: self.entries[i].recency)
            displaced = self.take(slot)
        self.store(slot, block)
        return displaced

    def blocks(self):
        """Buffered blocks from least to most recently inserted."""
        valid = sorted((e for e in self.entries if e.valid), key=lambda e: e.recency)
        return [EvictedBlock(e.tag, e.set_index, e.dirty) for e in valid]

    def _free_slot(self):
        for slot, entry in enumerate(self.entries):
            if not entry.valid:
                return slot
        return None


class VictimCache:
    """
    Primary cache backed by a victim buffer.
    Hits are served by the primary cache unchanged; on a primary miss the
    buffer is checked before memory and a buffered block is swapped back in.
    """

    def __init__(self, primary, buffer):
        self.primary = primary
        self.buffer = buffer

    @property
    def config(self):
        return self.primary.config

    def decode(self, address):
        return self.primary.decode(address)

    def find(self, set_index, tag):
        return self.primary.find(set_index, tag)

    def matches(self, set_index, way, tag):
        return self.primary.matches(set_index, way, tag)

    def hit(self, decoded, way, op):
        return self.primary.hit(decoded, way, op)

    def miss(self, decoded, op):
        write = op is Operation.WRITE
        way = self.primary.fill_way(decoded.set_index)
        slot = self.buffer.find(decoded.tag, decoded.set_index)
        if slot is not None:
            restored = self.buffer.take(slot)
            evicted = self.primary.install(decoded, way, restored.dirty or write)
            if evicted is not None:
                self.buffer.store(slot, evicted)
            return Outcome(hit=True, victim_hit=True, evicted=evicted,
                           set_index=decoded.set_index, tag=decoded.tag, way=way)

        evicted = self.primary.install(decoded, way, write)
        displaced = None
        if evicted is not None and self.buffer.find(evicted.tag, evicted.set_index) is None:
            displaced = self.buffer.insert(evicted)
        writeback = displaced if displaced is not None and displaced.dirty else None
        return Outcome(hit=False, evicted=evicted, set_index=decoded.set_index,
                       tag=decoded.tag, way=way, victim_displaced=displaced,
                       writeback=writeback)

    def access(self, address, op):
        decoded = self.decode(address)
        way = self.find(decoded.set_index, decoded.tag)
        if way is not None:
            return self.hit(decoded, way, op)
        return self.miss(decoded, op)
