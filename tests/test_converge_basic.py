import pytest

import starcc.stages.star as star
from starcc import storage
from starcc.errors import IterationCapped, StageFailure
from starcc.stages.converge import ConvergenceController, ConvergenceState, round_path
from starcc.substrate import LocalRunner


def _seed(tmp_path, edges):
    work = tmp_path / "work"
    storage.write_edge_parts(round_path(work, 0), [edges])
    return work


def _chain(n):
    return [(i + 1, i) for i in range(1, n)]


def test_path_contracts_to_star(tmp_path):
    work = _seed(tmp_path, _chain(5))
    res = ConvergenceController(LocalRunner(num_workers=2, num_map_tasks=2), work).run()
    assert res.state is ConvergenceState.CONVERGED
    assert res.history == [(3, 0), (2, 0), (0, 0)]
    assert res.rounds == 6
    assert res.total_changes == 5
    assert set(storage.read_edges(res.last_path)) == {(2, 1), (3, 1), (4, 1), (5, 1)}
    # only the final round survives
    assert storage.list_children(work, "round_") == [res.last_path]


def test_round_cap_stops_and_warns(tmp_path):
    work = _seed(tmp_path, _chain(40))
    controller = ConvergenceController(LocalRunner(num_workers=2, num_map_tasks=2), work, max_rounds=2)
    with pytest.warns(IterationCapped):
        res = controller.run()
    assert res.state is ConvergenceState.CAPPED
    assert res.rounds == 2
    assert res.last_path.exists()


def test_odd_round_cap_rejected(tmp_path):
    with pytest.raises(ValueError):
        ConvergenceController(LocalRunner(), tmp_path, max_rounds=3)


def test_failed_job_removes_every_round(tmp_path, monkeypatch):
    work = _seed(tmp_path, _chain(5))

    def broken(node, values, kv):
        raise RuntimeError("worker lost")

    monkeypatch.setattr(star, "reduce_small", broken)
    controller = ConvergenceController(LocalRunner(num_workers=2, num_map_tasks=2), work)
    with pytest.raises(StageFailure):
        controller.run()
    assert controller.state is ConvergenceState.FAILED
    assert storage.list_children(work, "round_") == []
