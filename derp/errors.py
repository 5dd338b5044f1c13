"""Pipeline error types."""

from __future__ import annotations


class DerpError(Exception):
    """Base class for every error raised by the pipeline."""


class ValidationError(DerpError, ValueError):
    """Invalid registration or option arguments.

    Examples:
    - ``skip(0)`` / ``take(-1)``.
    - A second ``reduce`` on the same pipeline.
    - Two clone policies (or two throttle levels) passed to one ``apply``.

    Raised before any state is touched.
    """


class RangeError(DerpError, IndexError):
    """A skip/take count exceeds the working set length at execution time."""

    def __init__(self, kind: str, n: int, length: int) -> None:
        self.kind = kind
        self.n = n
        self.length = length
        super().__init__(
            f"{kind}({n}) is out of range for a working set of length {length}."
        )


class EmptyReduceError(DerpError):
    """Reduce ran against an empty working set (no identity is assumed)."""


class CloneError(DerpError):
    """The input could not be copied under the requested clone policy."""


class InstructionError(DerpError):
    """A caller-supplied closure raised while an instruction was running.

    ``cause`` is the original exception (also chained as ``__cause__``);
    ``kind`` and ``index`` identify the failing instruction.
    """

    def __init__(self, kind: str, index: int, cause: BaseException) -> None:
        self.kind = kind
        self.index = index
        self.cause = cause
        super().__init__(
            f"{kind}[{index}] failed: {type(cause).__name__}: {cause}"
        )
