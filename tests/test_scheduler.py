import pytest

from simfire.run_params import ResultCode, RunDescriptor, allocate_generation
from simfire.scheduler import RunScheduler, partition, thread_name
from simfire.stepper import ExportSink


def _generation(count):
    descriptors = allocate_generation(count)
    for index, desc in enumerate(descriptors):
        desc.reset(aim=(100.0, 0.0, 1.0 + index), run_id=f"R{index}")
    return descriptors


@pytest.mark.parametrize("count,workers,sizes", [
    (10, 3, [4, 3, 3]),
    (9, 3, [3, 3, 3]),
    (2, 4, [1, 1, 0, 0]),
    (0, 2, [0, 0]),
    (5, 1, [5]),
])
def test_partition_sizes(count, workers, sizes):
    slices = partition(count, workers)
    assert [len(s) for s in slices] == sizes


def test_partition_is_contiguous_and_complete():
    slices = partition(23, 4)
    covered = [i for s in slices for i in s]
    assert covered == list(range(23))
    for prev, cur in zip(slices, slices[1:]):
        assert prev.stop == cur.start


def test_thread_name():
    assert thread_name(0) == "T00"
    assert thread_name(12) == "T12"


def test_every_descriptor_is_finished(vacuum_settings):
    descriptors = _generation(7)
    slices = RunScheduler(vacuum_settings, threads=3).run(descriptors)

    assert [len(s) for s in slices] == [3, 2, 2]
    assert all(d.result.is_finished for d in descriptors)
    assert [d.thread_id for d in descriptors] == ["T00"] * 3 + ["T01"] * 2 + ["T02"] * 2


def test_results_do_not_depend_on_thread_count(vacuum_settings):
    single = _generation(6)
    many = _generation(6)
    RunScheduler(vacuum_settings, threads=1).run(single)
    RunScheduler(vacuum_settings, threads=4).run(many)

    for a, b in zip(single, many):
        assert a.result is b.result
        assert a.min_dist_sq == b.min_dist_sq
        assert a.elapsed_time == b.elapsed_time


def test_more_threads_than_runs(vacuum_settings):
    descriptors = _generation(2)
    slices = RunScheduler(vacuum_settings, threads=8).run(descriptors)

    assert len(slices) == 2
    assert all(d.result.is_finished for d in descriptors)


def test_empty_batch(vacuum_settings, log_sink):
    assert RunScheduler(vacuum_settings, log_sink, threads=4).run([]) == []
    assert log_sink.messages == []


def test_thread_start_is_logged(vacuum_settings, log_sink):
    RunScheduler(vacuum_settings, log_sink, threads=2).run(_generation(4))
    starts = sorted(rid for rid, msg in log_sink.messages if msg.startswith("Starting"))
    assert starts == ["T00", "T01"]


def test_each_worker_gets_its_own_export_sink(vacuum_settings):
    created = []

    class Counting(ExportSink):
        def __init__(self):
            self.runs = []
            created.append(self)

        def begin_run(self, descriptor: RunDescriptor) -> None:
            self.runs.append(descriptor.run_id)

        def export_state(self, *state) -> None:
            pass

    RunScheduler(vacuum_settings, export_factory=Counting, threads=2).run(_generation(5))

    assert len(created) == 2
    assert sorted(r for sink in created for r in sink.runs) == [f"R{i}" for i in range(5)]


def test_worker_failure_is_raised(vacuum_settings):
    class Broken(ExportSink):
        def export_state(self, *state) -> None:
            raise RuntimeError("disk full")

    with pytest.raises(RuntimeError, match="disk full"):
        RunScheduler(vacuum_settings, export_factory=Broken, threads=2).run(_generation(3))


def test_zero_aim_does_not_stop_the_batch(vacuum_settings):
    descriptors = _generation(3)
    descriptors[1].reset(aim=(0.0, 0.0, 0.0))
    RunScheduler(vacuum_settings, threads=1).run(descriptors)

    assert [d.result for d in descriptors][1] is ResultCode.ERROR
    assert descriptors[0].result.is_finished and descriptors[2].result.is_finished
    assert descriptors[2].result is not ResultCode.ERROR
