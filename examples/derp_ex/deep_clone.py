#!/usr/bin/env python3
# %% [markdown]
# # Clone policies
#
# Records with nested lists and dicts are deep-copied by default, so a map
# that mutates them leaves the caller's data alone.  ``NO_COPY`` shares the
# input; ``DEEP_CLONE_CYCLES`` handles back-references.

# %%
import logging
from dataclasses import dataclass, field

from derp import CloneError, Option, Pipeline

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")
log = logging.getLogger(__name__)


@dataclass
class Person:
    name: str
    tags: list = field(default_factory=list)
    meta: dict = field(default_factory=dict)


def tag(i: int, value: Person) -> Person:
    value.tags.append("a")
    value.meta[4] = "four"
    return value


# %% [markdown]
# ## Default: structural clone

# %%
people = [Person("Kyle", ["x", "y", "z"], {1: "one", 2: "two", 3: "three"})]
pipe = Pipeline().map(tag)

new = pipe.apply(people)
print("New:\t", new)
print("Old:\t", people)

# %% [markdown]
# ## NO_COPY: the input is the working set

# %%
new = pipe.apply(people, Option.NO_COPY)
print("New:\t", new)
print("Old:\t", people)


# %% [markdown]
# ## Cycles


# %%
class Node:
    def __init__(self, value):
        self.value = value
        self.prev = None
        self.next = None

    def __repr__(self) -> str:
        return f"Node({self.value})"


nodes = [Node(v) for v in range(1, 4)]
for a, b in zip(nodes, nodes[1:]):
    a.next, b.prev = b, a

try:
    Pipeline().apply(nodes)
except CloneError as exc:
    log.info("Default clone refused the cycle: %s", exc)

copied = Pipeline().apply(nodes, Option.DEEP_CLONE_CYCLES)
print(copied, copied[1].prev is copied[0])
