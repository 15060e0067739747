"""Converters between binary record sets and their text form.

Handy for preparing test inputs and for inspecting round or cluster
directories by eye.
"""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict

from starcc import storage
from starcc.codec import cluster_from_text, cluster_to_text, edge_from_text, edge_to_text
from starcc.utils import get_logger

logger = get_logger(__name__)


def pair2text(src, dst) -> int:
    n = 0
    with open(dst, "w", encoding="utf-8") as f:
        for edge in storage.read_edges(src):
            f.write(edge_to_text(edge) + "\n")
            n += 1
    return n


def text2pair(src, dst) -> int:
    with open(src, "r", encoding="utf-8") as f:
        edges = [edge_from_text(line) for line in f if line.strip()]
    storage.write_edge_parts(dst, [edges])
    return len(edges)


def cluster2text(src, dst) -> int:
    n = 0
    with open(dst, "w", encoding="utf-8") as f:
        for _, members in storage.iter_cluster_files(src):
            f.write(cluster_to_text(members) + "\n")
            n += 1
    return n


def text2cluster(src, dst) -> int:
    with open(src, "r", encoding="utf-8") as f:
        clusters = [sorted(cluster_from_text(line)) for line in f if line.strip()]
    storage.write_clusters(dst, enumerate(clusters))
    return len(clusters)


TRANSLATORS: Dict[str, Callable[[Path, Path], int]] = {
    "pair2text": pair2text,
    "text2pair": text2pair,
    "cluster2text": cluster2text,
    "text2cluster": text2cluster,
}


def translate(kind: str, src, dst) -> int:
    fn = TRANSLATORS.get(kind.lower())
    if fn is None:
        raise ValueError(f"Unknown translation: {kind}")
    n = fn(Path(src), Path(dst))
    logger.info("translate.%s: records=%d %s -> %s", kind.lower(), n, src, dst)
    return n
