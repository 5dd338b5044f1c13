"""Executor: replays a pipeline's schedule against one input."""

from __future__ import annotations

import functools
import logging
from collections.abc import Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Any, Callable, Iterator, NoReturn

from .cloning import infer_policy, materialize
from .errors import EmptyReduceError, InstructionError, RangeError
from .instruction import Instruction, InstructionKind, resolve_schedule
from .options import ApplyConfig, ClonePolicy

if TYPE_CHECKING:
    from .pipeline import Pipeline

logger = logging.getLogger(__name__)

# Result slot of a worker whose chunk starts past the end of the working set.
_IDLE = object()


class Executor:
    """Runs one ``apply`` call.

    Every instruction is a fan-out/join barrier: the working set is split into
    ``num_workers`` contiguous chunks, one task per non-empty chunk is
    submitted to a bounded thread pool, and the next instruction starts only
    after all of them have finished.  Workers only touch their own index
    range, so the working list needs no locking.

    An ``Executor`` holds per-call state and is not reused.
    """

    def __init__(self, pipeline: "Pipeline", config: ApplyConfig) -> None:
        self.pipeline = pipeline
        self.config = config
        self.num_workers = config.num_workers
        self.chunk_size = 0
        self._working: list = []

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, input: Sequence[Any]) -> list:
        """Clone *input*, execute the schedule, return the final working set."""
        if not isinstance(input, Sequence):
            input = list(input)

        schedule = resolve_schedule(self.pipeline.orders)
        policy = self._resolve_policy(input)
        logger.debug(
            "Applying %d instruction(s) to %d element(s) with clone policy %s",
            len(schedule),
            len(input),
            policy.name,
        )
        self._working = materialize(input, policy, self.pipeline.cloner)

        logger.debug(
            "Running at %d%% power: %d worker(s)",
            round(self.config.throttle * 100),
            self.num_workers,
        )
        self._warn_unordered(schedule)
        self.chunk_size = self._chunk_size(len(self._working))

        handlers: dict[InstructionKind, Callable] = {
            InstructionKind.FILTER: self._filter,
            InstructionKind.MAP: self._map,
            InstructionKind.FOREACH: self._foreach,
            InstructionKind.REDUCE: self._reduce,
            InstructionKind.SKIP: self._skip,
            InstructionKind.TAKE: self._take,
        }

        with ThreadPoolExecutor(
            max_workers=self.num_workers, thread_name_prefix="derp-worker"
        ) as pool:
            for instruction in schedule:
                logger.debug(
                    "%s[%d] on %d element(s)",
                    instruction.name,
                    instruction.index,
                    len(self._working),
                )
                handlers[instruction.kind](pool, instruction)

                # Redistribute work evenly after every instruction
                old = self.chunk_size
                self.chunk_size = self._chunk_size(len(self._working))
                if old != self.chunk_size:
                    logger.debug(
                        "Redistributing work: chunk size %d -> %d",
                        old,
                        self.chunk_size,
                    )

        return self._working

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def _resolve_policy(self, input: Sequence[Any]) -> ClonePolicy:
        if self.config.clone_policy is not None:
            return self.config.clone_policy
        if self.pipeline.cloner is not None:
            return ClonePolicy.CLONE
        return infer_policy(input)

    def _warn_unordered(self, schedule: tuple[Instruction, ...]) -> None:
        kinds = {i.kind for i in schedule}
        if self.config.concurrent_foreach and InstructionKind.FOREACH in kinds:
            logger.warning(
                "CONCURRENT_FOREACH: foreach actions run in no particular order."
            )
        if self.config.parallel_reduce and InstructionKind.REDUCE in kinds:
            logger.warning(
                "PARALLEL_REDUCE: the combiner must be associative and commutative."
            )

    def _chunk_size(self, length: int) -> int:
        return (length + self.num_workers - 1) // self.num_workers

    def _chunks(self) -> Iterator[tuple[int, int, int]]:
        """Yield ``(worker, start, end)`` for every non-empty chunk."""
        length = len(self._working)
        for worker in range(self.num_workers):
            start = worker * self.chunk_size
            if start >= length:
                return
            yield worker, start, min(start + self.chunk_size, length)

    # ------------------------------------------------------------------
    # Fan-out / join
    # ------------------------------------------------------------------

    def _fan_out(
        self,
        pool: ThreadPoolExecutor,
        instruction: Instruction,
        work: Callable[[int, int], Any],
    ) -> list:
        """Run ``work(start, end)`` for every chunk and join.

        Returns one slot per worker, in worker order; idle workers hold
        ``_IDLE``.  If any chunk raises, chunks not yet started are cancelled,
        running ones are joined and their results discarded, and
        ``InstructionError`` is raised for the lowest failing worker.
        """
        results: list = [_IDLE] * self.num_workers
        futures: dict[Future, int] = {
            pool.submit(work, start, end): worker
            for worker, start, end in self._chunks()
        }
        if not futures:
            return results

        _, pending = wait(futures, return_when=FIRST_EXCEPTION)
        if pending:
            for f in pending:
                f.cancel()
            # Chunks already running cannot be interrupted; join them
            wait(pending)
        failed = sorted(
            (worker, f)
            for f, worker in futures.items()
            if not f.cancelled() and f.exception() is not None
        )
        if failed:
            worker, future = failed[0]
            self._fail(instruction, future.exception(), worker=worker)

        for future, worker in futures.items():
            results[worker] = future.result()
        return results

    def _fail(
        self,
        instruction: Instruction,
        exc: BaseException,
        worker: int | None = None,
    ) -> NoReturn:
        where = "" if worker is None else f" (worker {worker})"
        logger.error(
            "%s[%d] raised %s%s: %s",
            instruction.name,
            instruction.index,
            type(exc).__name__,
            where,
            exc,
        )
        raise InstructionError(instruction.name, instruction.index, exc) from exc

    # ------------------------------------------------------------------
    # Instruction handlers
    # ------------------------------------------------------------------

    def _filter(self, pool: ThreadPoolExecutor, instruction: Instruction) -> None:
        predicate = self.pipeline.filters[instruction.index]
        working = self._working

        def keep(start: int, end: int) -> list:
            return [v for v in working[start:end] if predicate(v)]

        kept: list = []
        for part in self._fan_out(pool, instruction, keep):
            if part is not _IDLE:
                kept.extend(part)
        self._working = kept

    def _map(self, pool: ThreadPoolExecutor, instruction: Instruction) -> None:
        transform = self.pipeline.mappers[instruction.index]
        working = self._working

        def rewrite(start: int, end: int) -> None:
            for i in range(start, end):
                working[i] = transform(i, working[i])

        self._fan_out(pool, instruction, rewrite)

    def _foreach(self, pool: ThreadPoolExecutor, instruction: Instruction) -> None:
        action = self.pipeline.foreachers[instruction.index]
        working = self._working

        if self.config.concurrent_foreach:

            def visit(start: int, end: int) -> None:
                for v in working[start:end]:
                    action(v)

            self._fan_out(pool, instruction, visit)
            return

        for v in working:
            try:
                action(v)
            except Exception as exc:
                self._fail(instruction, exc)

    def _reduce(self, pool: ThreadPoolExecutor, instruction: Instruction) -> None:
        combiner = self.pipeline.reducer
        working = self._working

        if not working:
            logger.error("reduce on an empty working set")
            raise EmptyReduceError(
                "Cannot reduce an empty working set: no initial value."
            )

        if self.config.parallel_reduce:

            def fold(start: int, end: int) -> Any:
                return functools.reduce(combiner, working[start:end])

            partials = [
                p for p in self._fan_out(pool, instruction, fold) if p is not _IDLE
            ]
        else:
            partials = working

        try:
            acc = functools.reduce(combiner, partials)
        except Exception as exc:
            self._fail(instruction, exc)
        self._working = [acc]

    def _skip(self, pool: ThreadPoolExecutor, instruction: Instruction) -> None:
        n = self._checked_count(instruction, self.pipeline.skip_counts)
        self._working = self._working[n:]

    def _take(self, pool: ThreadPoolExecutor, instruction: Instruction) -> None:
        n = self._checked_count(instruction, self.pipeline.take_counts)
        self._working = self._working[:n]

    def _checked_count(self, instruction: Instruction, counts: list[int]) -> int:
        n = counts[instruction.index]
        length = len(self._working)
        if n > length:
            logger.error(
                "%s(%d) out of range for %d element(s)", instruction.name, n, length
            )
            raise RangeError(instruction.name, n, length)
        return n
