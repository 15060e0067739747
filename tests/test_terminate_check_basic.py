from starcc import storage
from starcc.stages.check import run_check
from starcc.stages.terminate import find_cluster, format_cluster, iter_clusters, renumber_clusters, run_terminate
from starcc.substrate import LocalRunner


def _names(path):
    return sorted(p.name for p in storage.list_children(path, storage.CLUSTER_PREFIX))


def test_terminate_writes_one_file_per_component(tmp_path):
    storage.write_edge_parts(tmp_path / "last", [[(2, 1), (3, 1), (5, 4), (9, -1), (3, 1)]])
    res = run_terminate(LocalRunner(num_workers=2, num_map_tasks=2), tmp_path / "last", tmp_path / "out")
    assert (res.num_clusters, res.num_nodes) == (3, 6)
    assert sorted(iter_clusters(tmp_path / "out")) == [[1, 2, 3], [4, 5], [9]]
    assert _names(tmp_path / "out") == ["cluster_1", "cluster_4", "cluster_9"]
    assert find_cluster(tmp_path / "out", 5) == [4, 5]
    assert find_cluster(tmp_path / "out", 42) is None


def test_check_accepts_partition(tmp_path):
    storage.write_clusters(tmp_path / "out", [(1, [1, 2]), (3, [3])])
    res = run_check(LocalRunner(num_workers=2, num_map_tasks=2), tmp_path / "out")
    assert res.ok
    assert res.num_errors == 0


def test_check_flags_node_in_two_clusters(tmp_path):
    storage.write_clusters(tmp_path / "out", [(1, [1, 2, 3]), (4, [2, 4])])
    res = run_check(LocalRunner(num_workers=2, num_map_tasks=2), tmp_path / "out")
    assert not res.ok
    assert res.num_errors == 1


def test_renumber_is_idempotent(tmp_path):
    out = tmp_path / "out"
    storage.write_clusters(out, [(7, [7, 8]), (2, [2, 5]), (10, [10])])
    assert renumber_clusters(out) == 3
    first = {p.name: storage.read_cluster(p) for p in storage.list_children(out, storage.CLUSTER_PREFIX)}
    assert first == {"cluster_0": [2, 5], "cluster_1": [7, 8], "cluster_2": [10]}
    renumber_clusters(out)
    again = {p.name: storage.read_cluster(p) for p in storage.list_children(out, storage.CLUSTER_PREFIX)}
    assert again == first


def test_format_cluster():
    assert format_cluster(0, [1, 2, 3]) == "Cluster[0] = { 1,2,3 }"
