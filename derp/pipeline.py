"""Pipeline: deferred, reusable registry of data-processing instructions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

from .errors import ValidationError
from .executor import Executor
from .instruction import Instruction, InstructionKind
from .options import ApplyConfig, Option

logger = logging.getLogger(__name__)


class Pipeline:
    """Ordered list of instructions, replayed against data by ``apply``.

    Build via the fluent API::

        pipe = (
            Pipeline()
            .filter(lambda v: v % 2 == 0, "Get just evens")
            .map(lambda i, v: v * 2, "Double")
            .take(2)
        )

        pipe.apply(range(1, 11))            # [4, 8]
        pipe.apply([10, 11, 12, 13, 14])    # [20, 24]

    The pipeline holds no data.  Registrations are never consumed by
    ``apply``; pass ``Option.RESET`` to clear them after a run.

    Registration must finish before ``apply`` starts, and one pipeline should
    not be applied from several threads at once when ``RESET`` is used.
    """

    def __init__(self) -> None:
        self._filters: list[Callable[[Any], bool]] = []
        self._mappers: list[Callable[[int, Any], Any]] = []
        self._foreachers: list[Callable[[Any], None]] = []
        self._reducer: Callable[[Any, Any], Any] | None = None
        self._skip_counts: list[int] = []
        self._take_counts: list[int] = []
        self._cloner: Callable[[Any], Any] | None = None

        self._orders: list[Instruction] = []

    # ------------------------------------------------------------------
    # Read-only views used by the executor
    # ------------------------------------------------------------------

    @property
    def orders(self) -> tuple[Instruction, ...]:
        """Registered instructions in declaration order."""
        return tuple(self._orders)

    @property
    def filters(self) -> list[Callable[[Any], bool]]:
        return self._filters

    @property
    def mappers(self) -> list[Callable[[int, Any], Any]]:
        return self._mappers

    @property
    def foreachers(self) -> list[Callable[[Any], None]]:
        return self._foreachers

    @property
    def reducer(self) -> Callable[[Any, Any], Any] | None:
        return self._reducer

    @property
    def skip_counts(self) -> list[int]:
        return self._skip_counts

    @property
    def take_counts(self) -> list[int]:
        return self._take_counts

    @property
    def cloner(self) -> Callable[[Any], Any] | None:
        return self._cloner

    def __len__(self) -> int:
        return len(self._orders)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _append(
        self,
        kind: InstructionKind,
        index: int,
        comments: Iterable[str],
        count: int | None = None,
    ) -> "Pipeline":
        self._orders.append(
            Instruction(kind=kind, index=index, comments=tuple(comments), count=count)
        )
        return self

    def filter(self, predicate: Callable[[Any], bool], *comments: str) -> "Pipeline":
        """Keep only the elements where *predicate* returns true."""
        self._filters.append(predicate)
        return self._append(InstructionKind.FILTER, len(self._filters) - 1, comments)

    def map(self, transform: Callable[[int, Any], Any], *comments: str) -> "Pipeline":
        """Replace each element with ``transform(index, value)``.

        ``index`` is the element's position in the working set at the time the
        map runs, not in the original input.
        """
        self._mappers.append(transform)
        return self._append(InstructionKind.MAP, len(self._mappers) - 1, comments)

    def foreach(self, action: Callable[[Any], None], *comments: str) -> "Pipeline":
        """Call *action* on every element; the working set is left as is.

        Runs left to right on the calling thread unless
        ``Option.CONCURRENT_FOREACH`` is passed to ``apply``, in which case the
        call order across elements is undefined.
        """
        self._foreachers.append(action)
        return self._append(
            InstructionKind.FOREACH, len(self._foreachers) - 1, comments
        )

    def reduce(self, combiner: Callable[[Any, Any], Any], *comments: str) -> "Pipeline":
        """Set the terminal fold.

        ``combiner(acc, value)`` is called from the first element onwards; the
        output of ``apply`` becomes a one-element list.  Only one reduce is
        allowed and it always runs last, wherever it was declared.
        """
        if self._reducer is not None:
            raise ValidationError("Reduce has already been set.")
        self._reducer = combiner
        return self._append(InstructionKind.REDUCE, 0, comments)

    def skip(self, n: int) -> "Pipeline":
        """Drop the first *n* elements.  Comment inferred."""
        self._check_count("skip", n)
        self._skip_counts.append(n)
        return self._append(
            InstructionKind.SKIP, len(self._skip_counts) - 1, [f"skip({n})"], count=n
        )

    def take(self, n: int) -> "Pipeline":
        """Keep only the first *n* elements.  Comment inferred."""
        self._check_count("take", n)
        self._take_counts.append(n)
        return self._append(
            InstructionKind.TAKE, len(self._take_counts) - 1, [f"take({n})"], count=n
        )

    @staticmethod
    def _check_count(name: str, n: Any) -> None:
        if isinstance(n, bool) or not isinstance(n, int):
            raise ValidationError(
                f"{name}({n!r}): count must be an int. No order submitted."
            )
        if n < 1:
            raise ValidationError(f"{name}({n}): No order submitted.")

    def with_clone(self, cloner: Callable[[Any], Any]) -> "Pipeline":
        """Use *cloner* to copy each input element under the CLONE policy.

        *cloner* must return a fully independent copy of its argument.  It is
        also used when no clone option is passed, whatever the element type;
        ``Option.NO_COPY`` and ``Option.DEEP_CLONE_CYCLES`` still bypass it.
        """
        self._cloner = cloner
        return self

    def reset(self) -> None:
        """Clear every registration, including a cloner set by ``with_clone``."""
        self._filters = []
        self._mappers = []
        self._foreachers = []
        self._reducer = None
        self._skip_counts = []
        self._take_counts = []
        self._cloner = None
        self._orders = []

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def apply(
        self, input: Iterable[Any], *options: Option, parallelism: int | None = None
    ) -> list:
        """Run the instructions against *input* and return a new list.

        Options (at most one per category):
          - ``NO_COPY``: operate directly on *input*; expect mutations.
            Default for scalar elements.
          - ``CLONE``: structural deep copy.  Default for everything else.
          - ``DEEP_CLONE_CYCLES``: deep copy that preserves cycles and shared
            references, e.g. doubly linked lists.  Slower.
          - ``CONCURRENT_FOREACH``: run foreach chunks on the worker pool.
          - ``PARALLEL_REDUCE``: fold chunks in parallel; the combiner must be
            associative and commutative.
          - ``POWER_25`` / ``POWER_50`` / ``POWER_75`` / ``POWER_100``:
            fraction of *parallelism* used for workers.
          - ``RESET``: clear the pipeline after a successful run.

        *parallelism* overrides the detected CPU count.
        """
        config = ApplyConfig.from_options(options, parallelism=parallelism)
        result = Executor(self, config).run(input)
        if config.reset:
            logger.debug("Resetting pipeline after apply")
            self.reset()
        return result

    async def apply_async(
        self, input: Iterable[Any], *options: Option, parallelism: int | None = None
    ) -> list:
        """Async entry point; runs ``apply`` in a worker thread."""
        return await asyncio.to_thread(
            self.apply, input, *options, parallelism=parallelism
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        """Render the order list as an invoice, one entry per instruction."""
        out: list[str] = []
        for number, order in enumerate(self._orders, start=1):
            if order.comments:
                pretty = "".join(f"[ {c} ]\n\t\t" for c in order.comments)
            else:
                pretty = "[ N/A ]\n"
            out.append(
                f"Order {number}:\n\tAdapter: {order.name}\n\tIndex: {order.index}\n"
                f"\tComments: \n\t\t{pretty}\n"
            )
        return "".join(out)

    def __repr__(self) -> str:
        kinds = ", ".join(o.name for o in self._orders)
        return f"Pipeline([{kinds}])"
