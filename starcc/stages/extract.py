"""Edge extraction from adjacency lists or clique lists.

Adjacency rows look like ``"1<TAB>2,3"``; clique rows like ``"5 6 7"``. Every
edge comes out oriented ``(larger, smaller)`` and every mentioned node also
yields a ``(node, -1)`` marker, which is what lets the reduce count distinct
nodes and keeps nodes without neighbors alive as singleton clusters.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Tuple

from starcc import storage
from starcc.codec import INT32_MAX, ISOLATED
from starcc.errors import FormatIndeterminate, ParseError
from starcc.substrate import Job, KeyValue, LocalRunner, pair_key
from starcc.utils import elapsed_ms, get_logger

logger = get_logger(__name__)

ADJACENCY = "adjacency"
CLIQUE = "clique"
AUTO = "auto"

NUM_INITIAL_NODES = "NUM_INITIAL_NODES"
NUM_INITIAL_ROWS = "NUM_INITIAL_ROWS"


@dataclass
class ExtractResult:
    input_format: str
    initial_nodes: int
    initial_rows: int
    edges: int


# ---------- Format detection ----------

def classify_line(line: str):
    """Return the format a single line proves, or None for blank/singleton lines."""
    text = line.rstrip("\r\n")
    if not text.strip():
        return None
    if "\t" in text:
        return ADJACENCY
    if len(text.split()) > 1:
        return CLIQUE
    return None


def detect_format(path) -> str:
    for _, line in _read_lines(path):
        kind = classify_line(line)
        if kind is not None:
            return kind
    raise FormatIndeterminate(f"{path}: every line is blank or a single node, format cannot be detected")


# ---------- Map ----------

def parse_node(token: str, line_no: int, line: str) -> int:
    if not (token.isascii() and token.isdigit()):
        raise ParseError(line_no, line.rstrip("\r\n"))
    node = int(token)
    if node > INT32_MAX:
        raise ParseError(line_no, line.rstrip("\r\n"), reason=f"node id {node} out of range")
    return node


def map_adjacency(line_no: int, line: str, kv: KeyValue) -> None:
    text = line.rstrip("\r\n")
    if not text.strip():
        return
    kv.increment(NUM_INITIAL_ROWS)
    head, _, tail = text.partition("\t")
    node = parse_node(head.strip(), line_no, line)
    kv.add(node, ISOLATED)
    if not tail.strip():
        return
    for token in tail.split(","):
        neighbor = parse_node(token.strip(), line_no, line)
        kv.add(neighbor, ISOLATED)
        if neighbor != node:
            kv.add(max(node, neighbor), min(node, neighbor))


def map_clique(line_no: int, line: str, kv: KeyValue) -> None:
    tokens = line.split()
    if not tokens:
        return
    kv.increment(NUM_INITIAL_ROWS)
    nodes = [parse_node(t, line_no, line) for t in tokens]
    for i, a in enumerate(nodes):
        kv.add(a, ISOLATED)
        for b in nodes[i + 1:]:
            if a != b:
                kv.add(max(a, b), min(a, b))


# ---------- Reduce ----------

def reduce_initial(node: int, values: Iterator[int], kv: KeyValue) -> None:
    kv.increment(NUM_INITIAL_NODES)
    last = None
    for value in values:
        if value == last:
            continue
        last = value
        kv.add(node, value)


# ---------- Stage ----------

def _decode(raw: bytes, line_no: int) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(line_no, raw.decode("utf-8", "replace").rstrip("\r\n"), reason="invalid utf-8") from e


def _read_lines(path) -> Iterator[Tuple[int, str]]:
    with open(path, "rb") as f:
        for line_no, raw in enumerate(f, 1):
            yield line_no, _decode(raw, line_no)


def extract_job(input_format: str) -> Job:
    if input_format == ADJACENCY:
        map_fn = map_adjacency
    elif input_format == CLIQUE:
        map_fn = map_clique
    else:
        raise ValueError(f"Unknown input format: {input_format}")
    return Job(
        name=f"Initialization-{input_format}",
        map_fn=map_fn,
        reduce_fn=reduce_initial,
        sort_key_fn=pair_key,
        passthrough=(ParseError,),
    )


def run_extract(runner: LocalRunner, input_path, output_path: Path, input_format: str = AUTO) -> ExtractResult:
    t0 = time.monotonic()
    if input_format == AUTO:
        input_format = detect_format(input_path)
    logger.info("extract: input=%s format=%s", input_path, input_format)

    try:
        result = runner.run(extract_job(input_format), lambda: _read_lines(input_path))
        storage.write_edge_parts(output_path, result.partitions)
    except Exception:
        storage.discard(output_path)
        raise

    out = ExtractResult(
        input_format=input_format,
        initial_nodes=result.counter(NUM_INITIAL_NODES),
        initial_rows=result.counter(NUM_INITIAL_ROWS),
        edges=sum(len(p) for p in result.partitions),
    )
    logger.info(
        "extract: nodes=%d rows=%d records=%d took_ms=%d",
        out.initial_nodes, out.initial_rows, out.edges, elapsed_ms(t0),
    )
    return out

