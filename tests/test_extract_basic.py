import pytest

from starcc import storage
from starcc.errors import FormatIndeterminate, ParseError
from starcc.stages.extract import (
    ADJACENCY,
    CLIQUE,
    NUM_INITIAL_ROWS,
    detect_format,
    map_adjacency,
    map_clique,
    run_extract,
)
from starcc.substrate import KeyValue, LocalRunner


def _write(tmp_path, text, name="graph.txt"):
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_detect_format_skips_singleton_lines(tmp_path):
    assert detect_format(_write(tmp_path, "9\n\n1\t2\n")) == ADJACENCY
    assert detect_format(_write(tmp_path, "9\n5 6 7\n", "cliques.txt")) == CLIQUE


def test_detect_format_singletons_only(tmp_path):
    with pytest.raises(FormatIndeterminate):
        detect_format(_write(tmp_path, "9\n10\n"))
    with pytest.raises(FormatIndeterminate):
        detect_format(_write(tmp_path, "", "empty.txt"))


def test_map_adjacency_orients_edges_and_marks_nodes():
    kv = KeyValue()
    map_adjacency(1, "1\t2,3\n", kv)
    assert sorted(kv.records) == [(1, -1), (2, -1), (2, 1), (3, -1), (3, 1)]
    assert kv.counters[NUM_INITIAL_ROWS] == 1


def test_map_adjacency_self_loop_and_empty_neighbor_list():
    kv = KeyValue()
    map_adjacency(1, "4\t4\n", kv)
    map_adjacency(2, "9\t\n", kv)
    map_adjacency(3, "\n", kv)
    assert sorted(kv.records) == [(4, -1), (4, -1), (9, -1)]
    assert kv.counters[NUM_INITIAL_ROWS] == 2


def test_map_clique_emits_every_pair():
    kv = KeyValue()
    map_clique(1, "5 6 7\n", kv)
    edges = sorted(r for r in kv.records if r[1] != -1)
    markers = sorted(r[0] for r in kv.records if r[1] == -1)
    assert edges == [(6, 5), (7, 5), (7, 6)]
    assert markers == [5, 6, 7]


def test_bad_token_is_parse_error():
    with pytest.raises(ParseError) as ei:
        map_adjacency(3, "1\t2,x\n", KeyValue())
    assert ei.value.line_no == 3
    with pytest.raises(ParseError):
        map_clique(1, "5 -6\n", KeyValue())


def test_run_extract_counts_distinct_nodes(tmp_path):
    src = _write(tmp_path, "1\t2,2,3\n2\t1\n3\t1\n")
    out = run_extract(LocalRunner(num_workers=2, num_map_tasks=2), src, tmp_path / "round_0")
    assert out.input_format == ADJACENCY
    assert out.initial_nodes == 3
    assert out.initial_rows == 3
    # each distinct record survives once
    assert sorted(storage.read_edges(tmp_path / "round_0")) == [(1, -1), (2, -1), (2, 1), (3, -1), (3, 1)]


def test_run_extract_parse_error_leaves_no_output(tmp_path):
    src = _write(tmp_path, "1\t2\n3\tfoo\n")
    with pytest.raises(ParseError):
        run_extract(LocalRunner(), src, tmp_path / "round_0")
    assert not (tmp_path / "round_0").exists()


def test_forced_format_accepts_singleton_file(tmp_path):
    src = _write(tmp_path, "9\n")
    out = run_extract(LocalRunner(), src, tmp_path / "round_0", input_format=ADJACENCY)
    assert out.initial_nodes == 1
    assert list(storage.read_edges(tmp_path / "round_0")) == [(9, -1)]


def test_invalid_utf8_is_parse_error_when_detecting(tmp_path):
    src = tmp_path / "graph.txt"
    src.write_bytes(b"\xff\n1\t2\n")
    with pytest.raises(ParseError) as ei:
        detect_format(src)
    assert ei.value.line_no == 1


def test_invalid_utf8_is_not_retried_with_forced_format(tmp_path):
    src = tmp_path / "graph.txt"
    src.write_bytes(b"1\t2\n3\t\xff\n")
    runner = LocalRunner(num_workers=2, num_map_tasks=2, retries=2, backoff=0)
    with pytest.raises(ParseError) as ei:
        run_extract(runner, src, tmp_path / "round_0", input_format=ADJACENCY)
    assert ei.value.line_no == 2
    assert ei.value.reason == "invalid utf-8"
    assert not (tmp_path / "round_0").exists()
