"""Wire format of persisted records.

Edges are two consecutive big-endian int32 values ``(NodeID, NeighborID)``.
Clusters are a big-endian int32 count followed by that many NodeIDs in
ascending order. Text forms exist for inspection and translation only.
"""
from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence, Tuple

import numpy as np

INT32 = np.dtype(">i4")
INT32_MAX = int(np.iinfo(np.int32).max)

# Neighbor value of a node with no neighbors.
ISOLATED = -1

Edge = Tuple[int, int]


# ---------- Binary ----------

def encode_edges(edges: Iterable[Edge]) -> bytes:
    arr = np.asarray(list(edges), dtype=INT32).reshape(-1, 2)
    return arr.tobytes()


def decode_edges(buf: bytes) -> List[Edge]:
    if len(buf) % 8:
        raise ValueError(f"edge buffer length {len(buf)} is not a multiple of 8")
    arr = np.frombuffer(buf, dtype=INT32).reshape(-1, 2)
    return [(int(u), int(v)) for u, v in arr.tolist()]


def encode_cluster(members: Sequence[int]) -> bytes:
    arr = np.empty(len(members) + 1, dtype=INT32)
    arr[0] = len(members)
    arr[1:] = members
    return arr.tobytes()


def decode_clusters(buf: bytes) -> Iterator[List[int]]:
    """Yield every cluster record packed in ``buf``."""
    arr = np.frombuffer(buf, dtype=INT32)
    pos = 0
    while pos < arr.shape[0]:
        n = int(arr[pos])
        end = pos + 1 + n
        if n < 0 or end > arr.shape[0]:
            raise ValueError(f"truncated cluster record at offset {pos * 4}")
        yield arr[pos + 1:end].tolist()
        pos = end


# ---------- Text ----------

def edge_to_text(edge: Edge) -> str:
    return f"{edge[0]}\t{edge[1]}"


def edge_from_text(line: str) -> Edge:
    u, v = line.rstrip("\r\n").split("\t")
    return int(u), int(v)


def cluster_to_text(members: Sequence[int]) -> str:
    return " ".join(str(m) for m in members)


def cluster_from_text(line: str) -> List[int]:
    return [int(tok) for tok in line.split()]
