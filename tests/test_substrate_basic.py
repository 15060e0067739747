import pytest

from starcc.errors import StageFailure
from starcc.substrate import Job, LocalRunner, pair_key


def _emit(key, value, kv):
    kv.add(key, value)


def _count(key, values, kv):
    kv.add(key, len(list(values)))


def test_secondary_sort_delivers_ascending_values():
    seen = {}

    def collect(key, values, kv):
        seen[key] = list(values)

    job = Job(name="sorted", map_fn=_emit, reduce_fn=collect, sort_key_fn=pair_key)
    LocalRunner(num_workers=3, num_map_tasks=2).run(job, lambda: [(4, 9), (1, 7), (4, 2), (1, 3), (4, 5)])
    assert seen == {1: [3, 7], 4: [2, 5, 9]}


def test_partition_by_first_component_only():
    job = Job(name="count", map_fn=_emit, reduce_fn=_count, sort_key_fn=pair_key)
    records = [(k, v) for k in range(6) for v in range(3)]
    result = LocalRunner(num_workers=3, num_map_tasks=4).run(job, lambda: records)
    for i, part in enumerate(result.partitions):
        assert all(k % 3 == i for k, _ in part)
    assert sorted(result.records) == [(k, 3) for k in range(6)]


def test_counters_are_summed_across_tasks():
    job = Job(name="map-only", map_fn=lambda k, v, kv: kv.increment("SEEN"))
    result = LocalRunner(num_workers=2, num_map_tasks=3).run(job, lambda: [(i, i) for i in range(10)])
    assert result.counter("SEEN") == 10
    assert result.counter("MISSING") == 0
    assert list(result.records) == []


def test_task_failure_is_stage_failure():
    def boom(key, value, kv):
        if key == 3:
            raise RuntimeError("worker lost")
        kv.add(key, value)

    job = Job(name="boom", map_fn=boom, reduce_fn=_count)
    with pytest.raises(StageFailure) as ei:
        LocalRunner(num_workers=2, num_map_tasks=2).run(job, lambda: [(i, i) for i in range(5)])
    assert ei.value.stage == "boom"


def test_retry_rereads_input():
    attempts = []

    def flaky_input():
        attempts.append(1)
        if len(attempts) == 1:
            raise OSError("transient")
        return [(1, 2), (1, 5)]

    job = Job(name="flaky", map_fn=_emit, reduce_fn=_count)
    result = LocalRunner(num_workers=1, num_map_tasks=1, retries=2, backoff=0).run(job, flaky_input)
    assert len(attempts) == 2
    assert list(result.records) == [(1, 2)]


def test_combiner_instance_per_map_task():
    made = []

    def factory():
        made.append(1)

        def first_only(key, values, kv):
            kv.add(key, next(values))

        return first_only

    job = Job(name="combined", map_fn=_emit, reduce_fn=_count, combiner_factory=factory)
    result = LocalRunner(num_workers=2, num_map_tasks=2).run(job, lambda: [(1, 1), (1, 1), (1, 1), (1, 1)])
    assert len(made) == 2
    # one record per key survives each of the two map tasks
    assert list(result.records) == [(1, 2)]


def test_retries_exhausted_raise_stage_failure():
    attempts = []

    def broken_input():
        attempts.append(1)
        raise OSError("disk gone")

    job = Job(name="doomed", map_fn=_emit, reduce_fn=_count)
    with pytest.raises(StageFailure) as ei:
        LocalRunner(num_workers=1, num_map_tasks=1, retries=1, backoff=0).run(job, broken_input)
    assert ei.value.stage == "doomed"
    assert len(attempts) == 2
