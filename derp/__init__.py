"""Deferred-execution, reusable data-processing pipeline.

Register instructions without data, then replay them against any number of
inputs; every instruction fans out over a bounded worker pool.

Public surface::

    from derp import (
        Pipeline,
        Option,
        ApplyConfig,
        ClonePolicy,
        Instruction,
        InstructionKind,
        DerpError,
        ValidationError,
        RangeError,
        EmptyReduceError,
        CloneError,
        InstructionError,
    )
"""

from .errors import (
    CloneError,
    DerpError,
    EmptyReduceError,
    InstructionError,
    RangeError,
    ValidationError,
)
from .instruction import Instruction, InstructionKind, resolve_schedule
from .options import ApplyConfig, ClonePolicy, Option, available_parallelism
from .pipeline import Pipeline

__version__ = "0.3.0"

__all__ = [
    "Pipeline",
    "Option",
    "ApplyConfig",
    "ClonePolicy",
    "Instruction",
    "InstructionKind",
    "resolve_schedule",
    "available_parallelism",
    "DerpError",
    "ValidationError",
    "RangeError",
    "EmptyReduceError",
    "CloneError",
    "InstructionError",
]
