#!/usr/bin/env python3
# %% [markdown]
# # Order invoice
#
# Registers a few instructions without running them and prints the
# pipeline's order list.  Note the second ``map`` gets index 1: indices
# count per kind, not across the whole pipeline.

# %%
import logging

from derp import Pipeline

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

# %%
pipe = (
    Pipeline()
    .filter(lambda v: v % 2 == 0, "Get just evens")
    .map(lambda i, v: v // 2, "Half the value")
    .skip(2)
    .take(2)
    .foreach(print)  # no comment → [ N/A ]
    .map(lambda i, v: v + 1, "Increment value", "Check the index")
)

print(pipe)

# %% [markdown]
# The same pipeline, replayed against real data:

# %%
print(pipe.apply(list(range(20))))
