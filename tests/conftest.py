import matplotlib

matplotlib.use("Agg")

import pytest

from cache import CacheConfig


@pytest.fixture
def make_config():
    def _make(size_bytes=1024, block_size=32, associativity=1, **kwargs):
        return CacheConfig(size_bytes=size_bytes, block_size=block_size,
                           associativity=associativity, **kwargs)
    return _make


@pytest.fixture
def write_trace(tmp_path):
    def _write(text, name="sample.trace"):
        path = tmp_path / name
        path.write_text(text)
        return str(path)
    return _write
