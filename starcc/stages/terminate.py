"""Turns a converged edge set into explicit clusters.

After contraction every component is a star around its minimum node, so
re-orienting each edge ``(smaller, larger)`` and grouping by the smaller end
yields one group per component, keyed by its representative, with members
already ascending.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from starcc import storage
from starcc.codec import ISOLATED
from starcc.errors import StageFailure
from starcc.stages.star import distinct_neighbors
from starcc.substrate import Job, KeyValue, LocalRunner, pair_key
from starcc.utils import elapsed_ms, get_logger

logger = get_logger(__name__)

NUM_NODES = "NUM_NODES"
NUM_CLUSTERS = "NUM_CLUSTERS"


@dataclass
class TerminationResult:
    num_nodes: int
    num_clusters: int


def map_terminate(node: int, neighbor: int, kv: KeyValue) -> None:
    if neighbor == ISOLATED:
        kv.add(node, ISOLATED)
    else:
        kv.add(min(node, neighbor), max(node, neighbor))


def reduce_terminate(representative: int, values: Iterator[int], kv: KeyValue) -> None:
    members = [representative]
    members.extend(distinct_neighbors(values))
    kv.add(representative, members)
    kv.increment(NUM_CLUSTERS)
    kv.increment(NUM_NODES, len(members))


TERMINATION_JOB = Job(
    name="Termination",
    map_fn=map_terminate,
    reduce_fn=reduce_terminate,
    sort_key_fn=pair_key,
)


def run_terminate(runner: LocalRunner, input_path: Path, output_path: Path) -> TerminationResult:
    """Write one ``cluster_<representative>`` file per component into ``output_path``."""
    t0 = time.monotonic()
    try:
        result = runner.run(TERMINATION_JOB, lambda: storage.read_edges(input_path))
        storage.write_clusters(output_path, result.records)
    except OSError as e:
        storage.discard(output_path)
        raise StageFailure(TERMINATION_JOB.name, f"storage: {e}") from e
    except Exception:
        storage.discard(output_path)
        raise

    out = TerminationResult(
        num_nodes=result.counter(NUM_NODES),
        num_clusters=result.counter(NUM_CLUSTERS),
    )
    logger.info(
        "terminate: clusters=%d nodes=%d output=%s took_ms=%d",
        out.num_clusters, out.num_nodes, output_path, elapsed_ms(t0),
    )
    return out


# ---------- Reading clusters back ----------

def iter_clusters(path) -> Iterator[List[int]]:
    for _, members in storage.iter_cluster_files(path):
        yield members


def find_cluster(path, node: int) -> Optional[List[int]]:
    """Return the members of the cluster holding ``node``, if any."""
    for members in iter_clusters(path):
        if node in members:
            return members
    return None


def format_cluster(index, members: List[int]) -> str:
    return f"Cluster[{index}] = {{ {','.join(str(m) for m in members)} }}"


# ---------- Cosmetic renumbering ----------

def renumber_clusters(path) -> int:
    """Rename cluster files to ``cluster_0..N-1`` by ascending representative.

    Idempotent; contents are untouched. Returns the number of clusters.
    """
    p = Path(path)
    files = sorted(storage.iter_cluster_files(p), key=lambda fm: min(fm[1], default=-1))
    staged = []
    for k, (f, _) in enumerate(files):
        staged.append(storage.rename(f, p / f"{storage.RENUMBER_PREFIX}{k}"))
    for k, f in enumerate(staged):
        storage.rename(f, p / f"{storage.CLUSTER_PREFIX}{k}")
    logger.info("terminate: renumbered clusters=%d in %s", len(staged), p)
    return len(staged)
