"""Shared fixtures and reusable closures for derp engine tests."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

import pytest

from derp import Pipeline

# ---------------------------------------------------------------------------
# Reusable closures and records
# ---------------------------------------------------------------------------


def is_even(v: int) -> bool:
    return v % 2 == 0


def double(i: int, v: int) -> int:
    return v * 2


def add(acc: int, v: int) -> int:
    return acc + v


class Recorder:
    """Foreach action that records every value it receives (thread-safe)."""

    def __init__(self):
        self.seen: list = []
        self._lock = threading.Lock()

    def __call__(self, value) -> None:
        with self._lock:
            self.seen.append(value)


@dataclass
class Person:
    name: str
    tags: list = field(default_factory=list)
    meta: dict = field(default_factory=dict)


class Node:
    """Doubly linked list node (cyclic through prev/next)."""

    def __init__(self, value):
        self.value = value
        self.prev = None
        self.next = None


def linked(*values) -> list[Node]:
    nodes = [Node(v) for v in values]
    for a, b in zip(nodes, nodes[1:]):
        a.next = b
        b.prev = a
    return nodes


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pipe():
    return Pipeline()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def one_to_ten():
    return list(range(1, 11))


@pytest.fixture
def people():
    return [
        Person("Kyle", tags=["x", "y", "z"], meta={1: "one", 2: "two"}),
        Person("Ada", tags=["q"], meta={}),
    ]


@pytest.fixture(autouse=True)
def _no_env_parallelism(monkeypatch):
    """Keep DERP_MAX_PROCS from the developer's shell out of the tests."""
    monkeypatch.delenv("DERP_MAX_PROCS", raising=False)
