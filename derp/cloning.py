"""Materializing the working set under a clone policy.

Default policy by element shape (first element of the input):

=====================================================  ===================
Shape                                                  Policy
=====================================================  ===================
``None``, ``bool``, ``int``, ``float``, ``complex``,   ``NO_COPY``
``str``, ``bytes``, ``Decimal``, ``Fraction``, enums
anything else                                          ``CLONE``
empty input                                            ``NO_COPY``
=====================================================  ===================

``CLONE`` copies structure without an identity memo: shared sub-objects are
duplicated and cyclic data cannot be copied (``CloneError``).  Use
``DEEP_CLONE_CYCLES`` for graphs with back-references.
"""

from __future__ import annotations

import copy
import dataclasses
import types
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Any, Callable, Sequence

from .errors import CloneError
from .options import ClonePolicy


SCALAR_TYPES: tuple[type, ...] = (
    type(None),
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    Decimal,
    Fraction,
    Enum,
)

# Values that are shared rather than copied.
_ATOMIC_TYPES: tuple[type, ...] = SCALAR_TYPES + (
    range,
    type,
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.ModuleType,
)


def infer_policy(input: Sequence[Any]) -> ClonePolicy:
    """Pick the default clone policy from the shape of the first element."""
    if len(input) == 0:
        return ClonePolicy.NO_COPY
    if isinstance(input[0], SCALAR_TYPES):
        return ClonePolicy.NO_COPY
    return ClonePolicy.CLONE


def structural_copy(value: Any) -> Any:
    """Recursively copy containers, dataclasses and plain objects.

    No memo is kept, so a cyclic structure recurses until ``RecursionError``.
    """
    if isinstance(value, _ATOMIC_TYPES):
        return value

    cls = type(value)
    if cls is list:
        return [structural_copy(v) for v in value]
    if cls is tuple:
        return tuple(structural_copy(v) for v in value)
    if cls is dict:
        return {k: structural_copy(v) for k, v in value.items()}
    if cls is set:
        return {structural_copy(v) for v in value}
    if cls is frozenset:
        return frozenset(structural_copy(v) for v in value)
    if isinstance(value, tuple) and hasattr(cls, "_fields"):
        return cls._make(structural_copy(v) for v in value)

    # Subclasses of builtin containers keep their extra state (e.g.
    # defaultdict.default_factory) through copy.copy, then get fresh contents.
    if isinstance(value, dict):
        out = copy.copy(value)
        out.clear()
        out.update((k, structural_copy(v)) for k, v in value.items())
        return out
    if isinstance(value, list):
        out = copy.copy(value)
        out[:] = [structural_copy(v) for v in value]
        return out
    if isinstance(value, set):
        out = copy.copy(value)
        out.clear()
        out.update(structural_copy(v) for v in value)
        return out

    if isinstance(value, (tuple, frozenset)):
        # Immutable subclasses get their contents through __new__
        base = tuple if isinstance(value, tuple) else frozenset
        out = cls.__new__(cls, base(structural_copy(v) for v in value))
        _copy_attributes(value, out)
        return out

    out = copy.copy(value)
    if out is value:
        # __copy__ handed back the caller's object; never write onto it
        return value
    if dataclasses.is_dataclass(value):
        for f in dataclasses.fields(value):
            if hasattr(value, f.name):
                object.__setattr__(out, f.name, structural_copy(getattr(value, f.name)))
        return out
    _copy_attributes(value, out)
    return out


def _copy_attributes(value: Any, out: Any) -> None:
    if hasattr(value, "__dict__"):
        for name, attr in vars(value).items():
            object.__setattr__(out, name, structural_copy(attr))
    for name in _slot_names(type(value)):
        if hasattr(value, name):
            object.__setattr__(out, name, structural_copy(getattr(value, name)))


def _slot_names(cls: type) -> list[str]:
    names: list[str] = []
    for klass in cls.__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        names.extend(s for s in slots if s not in ("__dict__", "__weakref__"))
    return names


def materialize(
    input: Sequence[Any],
    policy: ClonePolicy,
    cloner: Callable[[Any], Any] | None = None,
) -> list:
    """Return the working set for *input* under *policy*.

    ``NO_COPY`` returns *input* itself when it is a ``list``.  A *cloner*
    replaces the built-in structural copier for the ``CLONE`` policy.
    """
    if policy is ClonePolicy.NO_COPY:
        return input if isinstance(input, list) else list(input)

    try:
        if policy is ClonePolicy.DEEP_CLONE_CYCLES:
            return copy.deepcopy(list(input))
        if cloner is not None:
            return [cloner(v) for v in input]
        return [structural_copy(v) for v in input]
    except RecursionError as exc:
        raise CloneError(
            "Input could not be cloned: recursion limit exceeded. "
            "Cyclic data needs the DEEP_CLONE_CYCLES option."
        ) from exc
    except Exception as exc:
        raise CloneError(
            f"Input could not be cloned with policy {policy.name}: "
            f"{type(exc).__name__}: {exc}"
        ) from exc
