"""Record sets on the local filesystem.

A record set is a directory. Edge sets hold one ``part-r-NNNNN`` file per
reducer; materialized cluster sets hold one ``cluster_<id>`` file per
cluster. Every write lands in a sibling ``<dir>._tmp`` first and is renamed
into place once complete, so a reader never observes a half-written set.
A write refuses to replace a directory holding anything besides record
files and ``stats.json``.
"""
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Tuple, Union

from starcc.codec import Edge, decode_clusters, decode_edges, encode_cluster, encode_edges

PathLike = Union[str, Path]

PART_PREFIX = "part-r-"
CLUSTER_PREFIX = "cluster_"
RENUMBER_PREFIX = "_renumber_"
STATS_NAME = "stats.json"

_OWNED_PREFIXES = (PART_PREFIX, CLUSTER_PREFIX, RENUMBER_PREFIX)


def _tmp_for(path: Path) -> Path:
    return path.with_name(path.name + "._tmp")


def _commit(tmp: Path, path: Path) -> None:
    ensure_replaceable(path)
    if path.exists():
        shutil.rmtree(path)
    tmp.rename(path)


def part_name(index: int) -> str:
    return f"{PART_PREFIX}{index:05d}"


# ---------- Generic ----------

def list_children(path: PathLike, prefix: str = "") -> List[Path]:
    p = Path(path)
    if not p.is_dir():
        return []
    return sorted(c for c in p.iterdir() if c.name.startswith(prefix))


def delete_tree(path: PathLike) -> bool:
    """Remove a record set (file or directory). Returns False when absent."""
    p = Path(path)
    if p.is_dir():
        shutil.rmtree(p)
        return True
    if p.exists():
        p.unlink()
        return True
    return False


def rename(src: PathLike, dst: PathLike) -> Path:
    return Path(src).rename(Path(dst))


def is_record_set(path: PathLike) -> bool:
    """True when ``path`` is absent or holds nothing but files written here."""
    p = Path(path)
    if not p.exists():
        return True
    if not p.is_dir():
        return False
    return all(c.name.startswith(_OWNED_PREFIXES) or c.name == STATS_NAME for c in p.iterdir())


def ensure_replaceable(path: PathLike) -> None:
    if not is_record_set(path):
        raise FileExistsError(f"{path} holds files this tool did not write; refusing to replace it")


def discard(path: PathLike) -> None:
    """Undo a failed write: drop the temp sibling, and the target only if it is a record set."""
    p = Path(path)
    delete_tree(_tmp_for(p))
    if is_record_set(p):
        delete_tree(p)


# ---------- Edges ----------

def write_edge_parts(path: PathLike, partitions: Sequence[Iterable[Edge]]) -> Path:
    p = Path(path)
    ensure_replaceable(p)
    tmp = _tmp_for(p)
    delete_tree(tmp)
    tmp.mkdir(parents=True)
    for i, part in enumerate(partitions):
        (tmp / part_name(i)).write_bytes(encode_edges(part))
    _commit(tmp, p)
    return p


def read_edges(path: PathLike) -> Iterator[Edge]:
    for part in list_children(path, PART_PREFIX):
        yield from decode_edges(part.read_bytes())


# ---------- Clusters ----------

def write_clusters(path: PathLike, clusters: Iterable[Tuple[int, Sequence[int]]]) -> Path:
    """Write one ``cluster_<name>`` file per ``(name, members)`` pair."""
    p = Path(path)
    ensure_replaceable(p)
    tmp = _tmp_for(p)
    delete_tree(tmp)
    tmp.mkdir(parents=True)
    for name, members in clusters:
        (tmp / f"{CLUSTER_PREFIX}{name}").write_bytes(encode_cluster(members))
    _commit(tmp, p)
    return p


def read_cluster(path: PathLike) -> List[int]:
    records = list(decode_clusters(Path(path).read_bytes()))
    if len(records) != 1:
        raise ValueError(f"{path}: expected one cluster record, found {len(records)}")
    return records[0]


def iter_cluster_files(path: PathLike) -> Iterator[Tuple[Path, List[int]]]:
    for f in list_children(path, CLUSTER_PREFIX):
        yield f, read_cluster(f)
