"""Unit tests for the executor: per-instruction semantics and worker dispatch."""

from __future__ import annotations

import threading
import time

import pytest

from derp import (
    ApplyConfig,
    EmptyReduceError,
    InstructionError,
    Option,
    Pipeline,
    RangeError,
)
from derp.executor import Executor
from tests.derp_engine.conftest import Recorder, add, double, is_even

WORKER_COUNTS = [1, 2, 3, 8]


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestChunking:
    def _executor(self, parallelism: int, length: int) -> Executor:
        ex = Executor(Pipeline(), ApplyConfig.from_options([], parallelism=parallelism))
        ex._working = list(range(length))
        ex.chunk_size = ex._chunk_size(length)
        return ex

    def test_chunks_cover_range_without_overlap(self):
        ex = self._executor(3, 10)
        assert list(ex._chunks()) == [(0, 0, 4), (1, 4, 8), (2, 8, 10)]

    def test_idle_workers_skipped(self):
        # chunk size ceil(3/8) = 1 → only three workers get work
        ex = self._executor(8, 3)
        assert list(ex._chunks()) == [(0, 0, 1), (1, 1, 2), (2, 2, 3)]

    def test_empty_working_set_has_no_chunks(self):
        assert list(self._executor(4, 0)._chunks()) == []

    def test_chunk_size_recomputed_after_each_instruction(self):
        sizes = []
        pipe = Pipeline().filter(lambda v: v < 4)
        ex = Executor(pipe, ApplyConfig.from_options([], parallelism=4))
        pipe.foreach(lambda v: sizes.append(ex.chunk_size))
        assert ex.run(list(range(100))) == [0, 1, 2, 3]
        # 100 elements → chunks of 25; after the filter, 4 elements → chunks of 1
        assert sizes == [1, 1, 1, 1]

    def test_workers_run_on_pool_threads(self):
        names = set()
        lock = threading.Lock()

        def spy(v):
            with lock:
                names.add(threading.current_thread().name)
            return True

        Pipeline().filter(spy).apply(list(range(8)), parallelism=2)
        assert names and all(n.startswith("derp-worker") for n in names)


# ---------------------------------------------------------------------------
# Filter / Map
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestFilter:
    @pytest.mark.parametrize("workers", WORKER_COUNTS)
    def test_order_preserved_for_any_worker_count(self, workers):
        data = list(range(101))
        out = Pipeline().filter(lambda v: v % 3 == 0).apply(data, parallelism=workers)
        assert out == [v for v in data if v % 3 == 0]

    def test_slow_early_chunk_does_not_reorder(self):
        def slow_first(v):
            if v < 5:
                time.sleep(0.01)
            return True

        out = Pipeline().filter(slow_first).apply(list(range(20)), parallelism=4)
        assert out == list(range(20))

    def test_filter_everything_out(self):
        assert Pipeline().filter(lambda v: False).apply([1, 2, 3]) == []


@pytest.mark.unit
class TestMap:
    @pytest.mark.parametrize("workers", WORKER_COUNTS)
    def test_receives_global_index(self, workers):
        out = Pipeline().map(lambda i, v: (i, v)).apply(list("abcdefg"), parallelism=workers)
        assert out == list(enumerate("abcdefg"))

    def test_index_is_position_in_current_working_set(self):
        out = (
            Pipeline()
            .skip(3)
            .map(lambda i, v: i)
            .apply([9, 9, 9, 9, 9], parallelism=2)
        )
        assert out == [0, 1]

    def test_maps_run_in_declaration_order(self):
        out = (
            Pipeline()
            .map(lambda i, v: v + 1)
            .map(double)
            .apply([1, 2], parallelism=2)
        )
        assert out == [4, 6]


# ---------------------------------------------------------------------------
# Foreach
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestForeach:
    def test_sequential_is_in_order(self, recorder):
        data = list(range(50))
        out = Pipeline().foreach(recorder).apply(data, parallelism=8)
        assert recorder.seen == data
        assert out == data

    def test_sequential_runs_on_calling_thread(self):
        threads = []
        Pipeline().foreach(
            lambda v: threads.append(threading.current_thread())
        ).apply([1, 2, 3], parallelism=4)
        assert set(threads) == {threading.current_thread()}

    def test_concurrent_visits_every_element(self, recorder):
        data = list(range(50))
        out = Pipeline().foreach(recorder).apply(
            data, Option.CONCURRENT_FOREACH, parallelism=4
        )
        assert sorted(recorder.seen) == data
        assert out == data

    def test_return_value_ignored(self):
        assert Pipeline().foreach(lambda v: v * 100).apply([1, 2]) == [1, 2]

    def test_snapshot_at_its_position(self, recorder):
        Pipeline().map(double).foreach(recorder).take(1).apply([1, 2, 3])
        assert recorder.seen == [2, 4, 6]


# ---------------------------------------------------------------------------
# Reduce
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestReduce:
    def test_sum(self, one_to_ten):
        assert Pipeline().reduce(add).apply(one_to_ten) == [55]

    def test_sequential_fold_order(self):
        out = Pipeline().reduce(lambda acc, v: acc + v).apply(list("abc"))
        assert out == ["abc"]

    def test_single_element_returns_it_without_calling_combiner(self):
        calls = []

        def combiner(acc, v):
            calls.append((acc, v))
            return acc

        assert Pipeline().reduce(combiner).apply([7]) == [7]
        assert calls == []

    def test_empty_input_raises(self):
        with pytest.raises(EmptyReduceError):
            Pipeline().reduce(add).apply([])

    def test_empty_after_filter_raises(self):
        pipe = Pipeline().filter(lambda v: v > 100).reduce(add)
        with pytest.raises(EmptyReduceError):
            pipe.apply([1, 2, 3])

    def test_declared_first_runs_last(self):
        out = Pipeline().reduce(add).map(double).take(3).apply([1, 2, 3, 4])
        assert out == [12]

    @pytest.mark.parametrize("workers", WORKER_COUNTS)
    def test_parallel_reduce_associative(self, workers):
        data = list(range(1, 1001))
        out = Pipeline().reduce(add).apply(
            data, Option.PARALLEL_REDUCE, parallelism=workers
        )
        assert out == [sum(data)]

    def test_parallel_reduce_folds_partials_in_worker_order(self):
        # Concatenation is associative but not commutative; worker-order
        # folding still yields the sequential answer.
        out = Pipeline().reduce(lambda a, v: a + v).apply(
            list("abcdefgh"), Option.PARALLEL_REDUCE, parallelism=3
        )
        assert out == ["abcdefgh"]


# ---------------------------------------------------------------------------
# Skip / Take
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSkipTake:
    def test_skip(self):
        assert Pipeline().skip(2).apply([1, 2, 3, 4]) == [3, 4]

    def test_take(self):
        assert Pipeline().take(2).apply([1, 2, 3, 4]) == [1, 2]

    def test_skip_equal_to_length_gives_empty(self):
        assert Pipeline().skip(3).apply([1, 2, 3]) == []

    def test_take_equal_to_length_gives_all(self):
        assert Pipeline().take(3).apply([1, 2, 3]) == [1, 2, 3]

    def test_skip_past_end_raises(self):
        with pytest.raises(RangeError) as exc_info:
            Pipeline().skip(4).apply([1, 2, 3])
        assert exc_info.value.length == 3

    def test_take_past_end_raises(self):
        with pytest.raises(RangeError, match="take"):
            Pipeline().take(4).apply([1, 2, 3])

    def test_range_checked_against_current_length(self):
        pipe = Pipeline().filter(is_even).take(3)
        with pytest.raises(RangeError):
            pipe.apply([1, 2, 3, 4])

    def test_range_error_aborts_remaining_instructions(self, recorder):
        pipe = Pipeline().skip(5).foreach(recorder)
        with pytest.raises(RangeError):
            pipe.apply([1, 2])
        assert recorder.seen == []

    def test_counts_looked_up_per_instance(self):
        out = Pipeline().skip(1).take(4).skip(2).take(1).apply(list(range(10)))
        assert out == [3]


# ---------------------------------------------------------------------------
# Closure failures
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestClosureFailures:
    def test_filter_failure_wrapped(self):
        def bad(v):
            if v == 7:
                raise ValueError("seven")
            return True

        with pytest.raises(InstructionError) as exc_info:
            Pipeline().filter(bad).apply(list(range(20)), parallelism=4)
        err = exc_info.value
        assert err.kind == "filter"
        assert err.index == 0
        assert isinstance(err.cause, ValueError)
        assert err.__cause__ is err.cause

    def test_map_failure_reports_its_index(self):
        pipe = Pipeline().map(double).map(lambda i, v: 1 / 0)
        with pytest.raises(InstructionError) as exc_info:
            pipe.apply([1, 2, 3], parallelism=2)
        assert exc_info.value.kind == "map"
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, ZeroDivisionError)

    def test_sequential_foreach_failure(self):
        def bad(v):
            raise KeyError(v)

        with pytest.raises(InstructionError, match="foreach"):
            Pipeline().foreach(bad).apply([1])

    def test_concurrent_foreach_failure(self):
        def bad(v):
            raise KeyError(v)

        with pytest.raises(InstructionError):
            Pipeline().foreach(bad).apply([1, 2, 3], Option.CONCURRENT_FOREACH)

    @pytest.mark.parametrize("opts", [(), (Option.PARALLEL_REDUCE,)])
    def test_reduce_failure(self, opts):
        def bad(acc, v):
            raise RuntimeError("boom")

        with pytest.raises(InstructionError, match="reduce"):
            Pipeline().reduce(bad).apply([1, 2, 3, 4], *opts, parallelism=2)

    def test_failure_stops_later_instructions(self, recorder):
        pipe = Pipeline().map(lambda i, v: 1 / 0).foreach(recorder)
        with pytest.raises(InstructionError):
            pipe.apply([1, 2])
        assert recorder.seen == []

    def test_lowest_failing_worker_reported(self):
        # chunks of two: workers 1 and 3 fail on their first element
        started = threading.Event()

        def bad(v):
            if v == 2:
                started.set()
                raise ValueError(v)
            if v == 6:
                # keep worker 1 from being cancelled before it runs
                started.wait(timeout=5)
                raise ValueError(v)
            return True

        with pytest.raises(InstructionError) as exc_info:
            Pipeline().filter(bad).apply(list(range(8)), parallelism=4)
        assert isinstance(exc_info.value.cause, ValueError)
        assert exc_info.value.cause.args == (2,)
