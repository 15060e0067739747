from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterator, Tuple

from starcc import storage
from starcc.errors import StageFailure
from starcc.substrate import Job, KeyValue, LocalRunner
from starcc.utils import elapsed_ms, get_logger

logger = get_logger(__name__)

NUM_ERRORS = "NUM_ERRORS"


@dataclass
class CheckResult:
    ok: bool
    num_errors: int


def map_check(cluster_name: str, members, kv: KeyValue) -> None:
    for node in members:
        kv.add(node, 1)


def reduce_check(node: int, values: Iterator[int], kv: KeyValue) -> None:
    # a node listed by more than one cluster breaks the partition
    if sum(values) > 1:
        kv.increment(NUM_ERRORS)


CHECK_JOB = Job(name="Check", map_fn=map_check, reduce_fn=reduce_check)


def _read_clusters(path) -> Iterator[Tuple[str, list]]:
    for f, members in storage.iter_cluster_files(path):
        yield f.name, members


def run_check(runner: LocalRunner, clusters_path) -> CheckResult:
    """Verify that no node appears in two clusters under ``clusters_path``."""
    t0 = time.monotonic()
    try:
        result = runner.run(CHECK_JOB, lambda: _read_clusters(clusters_path))
    except (OSError, ValueError) as e:
        raise StageFailure(CHECK_JOB.name, str(e)) from e
    errors = result.counter(NUM_ERRORS)
    out = CheckResult(ok=errors == 0, num_errors=errors)
    if out.ok:
        logger.info("check: ok took_ms=%d", elapsed_ms(t0))
    else:
        logger.warning("check: partition violated errors=%d took_ms=%d", errors, elapsed_ms(t0))
    return out
