# tracefile.py
import collections
import logging
import os

import numpy as np

from cache import Access, Operation

logger = logging.getLogger(__name__)

Trace = collections.namedtuple("Trace", ["name", "accesses"])

_PREFIXES = (("0x", 16), ("0b", 2), ("0o", 8))


class TraceFormatError(ValueError):
    """Raised for a trace line that cannot be turned into an access."""


def parse_address(token):
    """
    Parse an address token. 0x/0b/0o prefixes select the base; a bare token
    is read as hexadecimal first and decimal second.
    """
    token = token.strip()
    # int() would take signs and digit separators, addresses have neither
    if token[:1] in ("+", "-") or "_" in token:
        raise ValueError(f"invalid address token {token!r}")
    lowered = token.lower()
    for prefix, base in _PREFIXES:
        if lowered.startswith(prefix):
            return int(token[2:], base)
    try:
        return int(token, 16)
    except ValueError:
        return int(token, 10)


def parse_operation(token):
    return Operation.WRITE if token[:1].lower() == "w" else Operation.READ


def iter_accesses(lines, source="<trace>"):
    seq = 0
    for lineno, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split()
        if len(parts) < 2:
            raise TraceFormatError(f"{source}:{lineno}: expected '<op> <address>', got {stripped!r}")
        try:
            address = parse_address(parts[1])
        except ValueError:
            raise TraceFormatError(f"{source}:{lineno}: bad address {parts[1]!r}") from None
        yield Access(seq, parse_operation(parts[0]), address)
        seq += 1


def load_trace(path):
    with open(path, "r") as f:
        accesses = tuple(iter_accesses(f, source=path))
    name = os.path.basename(path) or path
    logger.info("Loaded %d accesses from %s", len(accesses), path)
    return Trace(name, accesses)


def discover_traces(directory="trace", suffix=".trace"):
    if not os.path.isdir(directory):
        raise FileNotFoundError(f"Default trace directory '{directory}' does not exist.")
    paths = sorted(
        os.path.join(directory, entry)
        for entry in os.listdir(directory)
        if entry.endswith(suffix) and os.path.isfile(os.path.join(directory, entry))
    )
    if not paths:
        raise FileNotFoundError(f"No *{suffix} files found under '{directory}'.")
    return paths


def synthetic_trace(num_requests=10000, working_set_kb=1024, block_size=32,
                    access_pattern="mixed", read_ratio=0.8, random_seed=None, name=None):
    """
    Generate a reproducible access stream over a working set of blocks.
    "sequential" walks the blocks with wrap-around, "random" draws uniformly,
    "mixed" takes the next sequential block 80% of the time.
    """
    if access_pattern not in ("sequential", "random", "mixed"):
        raise ValueError(f"unknown access pattern {access_pattern!r}")
    rng = np.random.default_rng(random_seed)
    num_blocks = max(1, (working_set_kb * 1024) // block_size)
    reads = rng.random(num_requests) < read_ratio
    seq_ptr = 0
    accesses = []
    for i in range(num_requests):
        if access_pattern == "sequential" or (access_pattern == "mixed" and rng.random() < 0.8):
            block = seq_ptr
            seq_ptr = (seq_ptr + 1) % num_blocks
        else:
            block = int(rng.integers(0, num_blocks))
        op = Operation.READ if reads[i] else Operation.WRITE
        accesses.append(Access(i, op, block * block_size))
    return Trace(name or f"synthetic-{access_pattern}", tuple(accesses))
