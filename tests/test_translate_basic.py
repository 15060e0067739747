import pytest

from starcc import storage
from starcc.stages.translate import translate


def test_cluster_text_and_back(tmp_path):
    (tmp_path / "c.txt").write_text("1 2 3\n\n4\n", encoding="utf-8")
    assert translate("text2cluster", tmp_path / "c.txt", tmp_path / "bin") == 2
    assert len(storage.list_children(tmp_path / "bin", storage.CLUSTER_PREFIX)) == 2
    assert translate("cluster2text", tmp_path / "bin", tmp_path / "back.txt") == 2
    assert sorted((tmp_path / "back.txt").read_text(encoding="utf-8").splitlines()) == ["1 2 3", "4"]


def test_pairs_to_text(tmp_path):
    storage.write_edge_parts(tmp_path / "edges", [[(2, 1)], [(9, -1)]])
    assert translate("PAIR2TEXT", tmp_path / "edges", tmp_path / "e.txt") == 2
    assert (tmp_path / "e.txt").read_text(encoding="utf-8") == "2\t1\n9\t-1\n"


def test_unknown_kind():
    with pytest.raises(ValueError):
        translate("edges2csv", "a", "b")
