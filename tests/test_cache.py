import random

import pytest

from cache import (AddressDecoder, AddressRangeError, CacheConfig, CacheConfigError,
                   HIT, MEMORY_MISS, Operation, PrimaryCache, ReplacementSet)
from stats import AccessStatistics

R = Operation.READ
W = Operation.WRITE


def test_address_decomposition():
    decoder = AddressDecoder(block_size=32, num_sets=32)
    tag, set_index, offset = decoder.decode(0x1234)
    assert offset == 0x14
    assert set_index == 17
    assert tag == 4


def test_decoder_rejects_bad_geometry():
    with pytest.raises(CacheConfigError):
        AddressDecoder(block_size=24, num_sets=32)
    with pytest.raises(CacheConfigError):
        AddressDecoder(block_size=32, num_sets=0)


def test_default_config_geometry():
    config = CacheConfig()
    config.validate()
    assert config.num_sets == 2048
    assert config.num_blocks == 8192


@pytest.mark.parametrize("kwargs", [
    {"size_bytes": 0},
    {"block_size": 24},
    {"associativity": 3},
    {"size_bytes": 1000},
    {"size_bytes": 96},
    {"address_width": 8},
    {"address_width": 0},
    {"victim_entries": -1},
    {"columns": 0},
])
def test_invalid_configs_are_rejected(make_config, kwargs):
    config = make_config(**kwargs)
    with pytest.raises(CacheConfigError):
        PrimaryCache(config)


def test_unknown_prediction_is_a_config_error():
    with pytest.raises(CacheConfigError):
        CacheConfig(prediction="lfu")


def test_config_dict_round_trip(make_config):
    config = make_config(associativity=2, victim_entries=4, prediction="mru")
    assert CacheConfig.from_dict(config.to_dict()) == config
    assert config.replace(associativity=4).associativity == 4
    assert config.associativity == 2


def test_address_outside_width_is_rejected_without_side_effects(make_config):
    cache = PrimaryCache(make_config(address_width=16))
    with pytest.raises(AddressRangeError):
        cache.access(1 << 16, R)
    with pytest.raises(AddressRangeError):
        cache.access(-1, R)
    assert cache.valid_blocks() == 0
    cache.access((1 << 16) - 1, R)
    assert cache.valid_blocks() == 1


def test_end_to_end_direct_mapped(make_config):
    cache = PrimaryCache(make_config(size_bytes=1024, block_size=32, associativity=1))
    stats = AccessStatistics()

    first = cache.access(0x0000, W)
    second = cache.access(0x0020, R)
    third = cache.access(0x0000, R)
    for op, outcome in ((W, first), (R, second), (R, third)):
        stats.record(op, outcome)

    assert not first.hit and first.evicted is None
    assert not second.hit and second.set_index == 1 and second.evicted is None
    assert third.hit and third.kind == HIT
    assert cache.way(0, 0).dirty
    assert stats.hits == 1
    assert stats.misses == 2
    assert stats.hit_rate() == pytest.approx(1 / 3)


def test_fills_invalid_ways_in_slot_order(make_config):
    cache = PrimaryCache(make_config(size_bytes=128, associativity=4))
    ways = [cache.access(tag * 32, R).way for tag in range(4)]
    assert ways == [0, 1, 2, 3]


def test_lru_evicts_first_of_n_plus_one_distinct_tags(make_config):
    cache = PrimaryCache(make_config(size_bytes=128, associativity=4))
    for tag in range(4):
        cache.access(tag * 32, R)
    outcome = cache.access(4 * 32, R)
    assert outcome.kind == MEMORY_MISS
    assert outcome.evicted.tag == 0
    assert outcome.way == 0
    assert sorted(cache.resident_tags(0)) == [1, 2, 3, 4]


def test_hit_refreshes_recency(make_config):
    cache = PrimaryCache(make_config(size_bytes=128, associativity=4))
    for tag in range(4):
        cache.access(tag * 32, R)
    assert cache.access(0, R).hit
    assert cache.access(4 * 32, R).evicted.tag == 1
    assert [cache.way(0, w).tag for w in range(4)] == [0, 4, 2, 3]
    assert cache.sets[0].victim() == 2


def test_write_back_reports_dirty_only_for_written_blocks(make_config):
    cache = PrimaryCache(make_config(size_bytes=128, associativity=4))
    cache.access(0, W)
    for tag in range(1, 4):
        cache.access(tag * 32, R)

    dirty = cache.access(4 * 32, R)
    assert dirty.evicted.tag == 0 and dirty.evicted.dirty
    assert dirty.writeback == dirty.evicted

    clean = cache.access(5 * 32, R)
    assert clean.evicted.tag == 1 and not clean.evicted.dirty
    assert clean.writeback is None


def test_write_hit_marks_dirty(make_config):
    cache = PrimaryCache(make_config())
    cache.access(0x40, R)
    assert not cache.way(2, 0).dirty
    cache.access(0x44, W)
    assert cache.way(2, 0).dirty


def test_capacity_invariant_under_random_traffic(make_config):
    config = make_config(size_bytes=512, block_size=32, associativity=2)
    cache = PrimaryCache(config)
    rng = random.Random(7)
    for _ in range(2000):
        op = W if rng.random() < 0.3 else R
        cache.access(rng.randrange(0, 1 << 14), op)
        assert all(s.valid_count() <= config.associativity for s in cache.sets)
        assert cache.valid_blocks() <= config.num_blocks


def test_replacement_set_recency_is_unique():
    rs = ReplacementSet(2)
    rs.install(0, 5, dirty=False)
    rs.install(1, 6, dirty=True)
    rs.touch(0)
    assert rs.ways[0].recency != rs.ways[1].recency
    assert rs.victim() == 1
    assert rs.install(1, 7, dirty=False) == (6, True)
