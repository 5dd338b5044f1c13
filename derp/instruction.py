"""Instruction records: the entries of a pipeline's order list."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class InstructionKind(Enum):
    """The six operations a pipeline can schedule."""

    FILTER = "filter"
    MAP = "map"
    FOREACH = "foreach"
    REDUCE = "reduce"
    SKIP = "skip"
    TAKE = "take"


@dataclass(frozen=True)
class Instruction:
    """Frozen record of one registered operation.

    ``index`` is the slot of the behaviour (closure or count) inside the
    pipeline's per-kind storage.  ``comments`` are documentation only and
    never affect execution.  ``count`` is only set for SKIP and TAKE.
    """

    kind: InstructionKind
    index: int = 0
    comments: tuple = field(default_factory=tuple)
    count: int | None = None

    def __post_init__(self) -> None:
        # Coerce list/other iterables → tuple for immutability
        if not isinstance(self.comments, tuple):
            object.__setattr__(self, "comments", tuple(self.comments))

    @property
    def name(self) -> str:
        return self.kind.value


def resolve_schedule(orders: Iterable[Instruction]) -> tuple[Instruction, ...]:
    """Return the execution order for *orders*.

    Every kind keeps its declaration order, except REDUCE which is moved to
    the end.  *orders* itself is left untouched, so resolving the same
    registrations twice always yields the same schedule.
    """
    ordered = list(orders)
    reduces = [o for o in ordered if o.kind is InstructionKind.REDUCE]
    rest = [o for o in ordered if o.kind is not InstructionKind.REDUCE]
    return tuple(rest + reduces)
