"""Local execution substrate: a grouped-compute primitive over in-memory records.

A :class:`Job` bundles plain functions; :class:`LocalRunner` drives them
through map, optional combine, partition, secondary sort, group and reduce.
Map, combine and reduce functions receive a :class:`KeyValue` to emit records
and bump counters on, in the same spirit as MapReduce-MPI callbacks::

    def reduce_fn(key, values, kv):
        for v in values:
            kv.add(v, key)
        kv.increment("NUM_SEEN")

Counters are task-local and summed into the :class:`JobResult`; nothing is
shared between tasks. Any exception raised by a task fails the whole job
with :class:`StageFailure` and discards every partial output.
"""
from __future__ import annotations

import itertools
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Type

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from starcc.errors import StageFailure
from starcc.utils import get_logger

logger = get_logger(__name__)

Record = Tuple[Any, Any]
MapFn = Callable[[Any, Any, "KeyValue"], None]
ReduceFn = Callable[[Any, Iterator[Any], "KeyValue"], None]


# ---------- Grouping contract ----------

def partition_by_node(key: int, value: Any, num_partitions: int) -> int:
    """Route on the first component only, so a node's records meet in one reducer."""
    return key % num_partitions


def node_key(record: Record):
    return record[0]


def pair_key(record: Record):
    # secondary sort: NodeID first, then ascending NeighborID
    return record[0], record[1]


class KeyValue:
    """Per-task output buffer and counter set."""

    __slots__ = ("records", "counters")

    def __init__(self):
        self.records: List[Record] = []
        self.counters: Counter = Counter()

    def add(self, key, value) -> None:
        self.records.append((key, value))

    def increment(self, name: str, amount: int = 1) -> None:
        if amount:
            self.counters[name] += amount


@dataclass(frozen=True)
class Job:
    """A single distributed pass.

    ``group_key_fn`` must be a prefix of ``sort_key_fn``: groups are formed
    from consecutive records after sorting. ``passthrough`` lists exception
    types that describe bad input rather than a broken task; they propagate
    unchanged and are never retried.
    """

    name: str
    map_fn: MapFn
    reduce_fn: Optional[ReduceFn] = None
    partition_fn: Callable[[Any, Any, int], int] = partition_by_node
    group_key_fn: Callable[[Record], Any] = node_key
    sort_key_fn: Callable[[Record], Any] = node_key
    combiner_factory: Optional[Callable[[], ReduceFn]] = None
    passthrough: Tuple[Type[BaseException], ...] = ()


@dataclass
class JobResult:
    partitions: List[List[Record]]
    counters: Dict[str, int]

    @property
    def records(self) -> Iterator[Record]:
        return itertools.chain.from_iterable(self.partitions)

    def counter(self, name: str) -> int:
        return int(self.counters.get(name, 0))


def _split(records: List[Record], n: int) -> List[List[Record]]:
    if not records:
        return [[]]
    size = -(-len(records) // n)
    return [records[i:i + size] for i in range(0, len(records), size)]


def _values(group: Iterable[Record]) -> Iterator[Any]:
    for _, value in group:
        yield value


class LocalRunner:
    """Runs jobs on a thread pool with ``num_workers`` reduce partitions."""

    def __init__(self, num_workers: int = 4, num_map_tasks: int = 4, retries: int = 0, backoff: float = 0.5):
        if num_workers < 1 or num_map_tasks < 1:
            raise ValueError("num_workers and num_map_tasks must be >= 1")
        self.num_workers = int(num_workers)
        self.num_map_tasks = int(num_map_tasks)
        self.retries = int(retries)
        self.backoff = float(backoff)

    @classmethod
    def from_config(cls, cfg: dict) -> "LocalRunner":
        sub = cfg.get("substrate", {})
        return cls(
            num_workers=int(sub.get("num_workers", 4)),
            num_map_tasks=int(sub.get("num_map_tasks", 4)),
            retries=int(sub.get("retries", 0)),
        )

    def run(self, job: Job, read_input: Callable[[], Iterable[Record]]) -> JobResult:
        """Run ``job`` to completion. ``read_input`` is called once per attempt."""
        retrying = Retrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.backoff, max=10),
            retry=retry_if_exception_type(StageFailure),
            before_sleep=lambda rs: logger.warning(
                "job %s attempt=%d failed, retrying: %s", job.name, rs.attempt_number, rs.outcome.exception()
            ),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._run_once(job, read_input)
        raise StageFailure(job.name, "no attempt was made")

    # ---------- Phases ----------

    def _guard(self, job: Job, fn, *args):
        try:
            return fn(*args)
        except job.passthrough:
            raise
        except StageFailure:
            raise
        except Exception as e:
            raise StageFailure(job.name, f"{type(e).__name__}: {e}") from e

    def _run_once(self, job: Job, read_input: Callable[[], Iterable[Record]]) -> JobResult:
        records = self._guard(job, lambda: list(read_input()))
        splits = _split(records, self.num_map_tasks)
        n = self.num_workers
        counters: Counter = Counter()

        with ThreadPoolExecutor(max_workers=self.num_workers) as pool:
            map_outs = list(pool.map(lambda s: self._guard(job, self._map_task, job, s, n), splits))
            for _, c in map_outs:
                counters.update(c)

            if job.reduce_fn is None:
                partitions = [buckets[0] for buckets, _ in map_outs]
                logger.debug("job %s map-only in=%d out=%d", job.name, len(records), sum(len(p) for p in partitions))
                return JobResult(partitions=partitions, counters=dict(counters))

            shuffled: List[List[Record]] = [[] for _ in range(n)]
            for buckets, _ in map_outs:
                for i, bucket in enumerate(buckets):
                    shuffled[i].extend(bucket)

            reduce_outs = list(pool.map(lambda b: self._guard(job, self._reduce_task, job, b), shuffled))

        partitions = []
        for kv in reduce_outs:
            partitions.append(kv.records)
            counters.update(kv.counters)
        logger.debug(
            "job %s in=%d shuffled=%d out=%d",
            job.name, len(records), sum(len(b) for b in shuffled), sum(len(p) for p in partitions),
        )
        return JobResult(partitions=partitions, counters=dict(counters))

    def _map_task(self, job: Job, split: List[Record], n: int):
        kv = KeyValue()
        for key, value in split:
            job.map_fn(key, value, kv)
        if job.reduce_fn is None:
            return [kv.records], kv.counters

        buckets: List[List[Record]] = [[] for _ in range(n)]
        for rec in kv.records:
            buckets[job.partition_fn(rec[0], rec[1], n)].append(rec)

        if job.combiner_factory is not None:
            combine = job.combiner_factory()
            for i, bucket in enumerate(buckets):
                # map-side groups keep arrival order, no sort
                groups: Dict[Any, List[Record]] = {}
                for rec in bucket:
                    groups.setdefault(job.group_key_fn(rec), []).append(rec)
                ckv = KeyValue()
                for key, group in groups.items():
                    combine(key, _values(group), ckv)
                buckets[i] = ckv.records
                kv.counters.update(ckv.counters)
        return buckets, kv.counters

    def _reduce_task(self, job: Job, bucket: List[Record]) -> KeyValue:
        bucket.sort(key=job.sort_key_fn)
        kv = KeyValue()
        for key, group in itertools.groupby(bucket, key=job.group_key_fn):
            job.reduce_fn(key, _values(group), kv)
        return kv
