"""Large-Star and Small-Star edge rewrites.

Both are one grouped pass over the current edge set. Records are routed by
NodeID and each group's neighbors arrive in ascending order, so the smallest
neighbor is always the first value of the group and no neighbor list is ever
buffered.
"""
from __future__ import annotations

import itertools
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional

from starcc import storage
from starcc.codec import ISOLATED
from starcc.errors import StageFailure
from starcc.substrate import Job, KeyValue, LocalRunner, pair_key
from starcc.utils import elapsed_ms, get_logger

logger = get_logger(__name__)

NUM_CHANGES = "NUM_CHANGES"


class StarMode(str, Enum):
    LARGE = "large"
    SMALL = "small"


# ---------- Map ----------

def map_large(node: int, neighbor: int, kv: KeyValue) -> None:
    # every node sees its whole neighborhood
    kv.add(node, neighbor)
    if neighbor != ISOLATED:
        kv.add(neighbor, node)


def map_small(node: int, neighbor: int, kv: KeyValue) -> None:
    # every node sees only its neighbors not larger than itself
    if neighbor == ISOLATED:
        kv.add(node, neighbor)
    else:
        kv.add(max(node, neighbor), min(node, neighbor))


# ---------- Reduce ----------

def distinct_neighbors(values: Iterator[int]) -> Iterator[int]:
    """Drop isolation sentinels and consecutive duplicates from a sorted stream."""
    last = ISOLATED
    for v in values:
        if v == last:
            continue
        last = v
        yield v


def _reduce(node: int, values: Iterator[int], kv: KeyValue, small: bool) -> None:
    neighbors = distinct_neighbors(values)
    first = next(neighbors, None)
    if first is None:
        kv.add(node, ISOLATED)
        return

    min_label = min(node, first)
    if small and node != min_label:
        kv.add(node, min_label)

    produced = 0
    for neighbor in itertools.chain((first,), neighbors):
        if small:
            emit = neighbor != min_label
        else:
            emit = neighbor > node
        if emit:
            kv.add(neighbor, min_label)
            produced += 1

    # re-affirming the edges of an already minimal node is not a change
    if node != min_label:
        kv.increment(NUM_CHANGES, produced)


def reduce_large(node: int, values: Iterator[int], kv: KeyValue) -> None:
    _reduce(node, values, kv, small=False)


def reduce_small(node: int, values: Iterator[int], kv: KeyValue) -> None:
    _reduce(node, values, kv, small=True)


# ---------- Stage ----------

def star_job(mode: StarMode, round_index: int, combiner: Optional[Callable] = None) -> Job:
    mode = StarMode(mode)
    small = mode is StarMode.SMALL
    return Job(
        name=f"{'Small' if small else 'Large'}-Star{round_index}",
        map_fn=map_small if small else map_large,
        reduce_fn=reduce_small if small else reduce_large,
        sort_key_fn=pair_key,
        combiner_factory=combiner,
    )


def run_star(
    runner: LocalRunner,
    mode: StarMode,
    input_path: Path,
    output_path: Path,
    *,
    round_index: int = 0,
    combiner: Optional[Callable] = None,
) -> int:
    """Rewrite the edge set at ``input_path`` into ``output_path``; return its change count."""
    t0 = time.monotonic()
    job = star_job(mode, round_index, combiner)
    try:
        result = runner.run(job, lambda: storage.read_edges(input_path))
        storage.write_edge_parts(output_path, result.partitions)
    except OSError as e:
        storage.discard(output_path)
        raise StageFailure(job.name, f"storage: {e}") from e
    except Exception:
        storage.discard(output_path)
        raise
    changes = result.counter(NUM_CHANGES)
    logger.info(
        "star.%s: round=%d changes=%d edges=%d took_ms=%d",
        StarMode(mode).value, round_index, changes, sum(len(p) for p in result.partitions), elapsed_ms(t0),
    )
    return changes
