#!/usr/bin/env python3
# %% [markdown]
# # Primes
#
# Fills a list with random bytes using one pipeline, then filters the primes
# out of it with a second one.  Pipelines are not consumed by ``apply``; two
# are used here only because they do different jobs.

# %%
import logging
import random
import time

from derp import Pipeline

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")
log = logging.getLogger(__name__)

SIZE = 1_000_000


def is_prime(value: int) -> bool:
    if value < 2:
        return False
    if value in (2, 3):
        return True
    if value % 2 == 0 or value % 3 == 0:
        return False
    i = 5
    while i * i <= value:
        if value % i == 0 or value % (i + 2) == 0:
            return False
        i += 6
    return True


# %%
log.info("Size: %d values", SIZE)

start = time.perf_counter()
numbers = Pipeline().map(lambda i, v: random.randrange(256)).apply([0] * SIZE)
log.info("Allocated in %.3fs", time.perf_counter() - start)

start = time.perf_counter()
primes = Pipeline().filter(is_prime, "Keep primes").apply(numbers)
log.info("Found %d primes in %.3fs", len(primes), time.perf_counter() - start)
