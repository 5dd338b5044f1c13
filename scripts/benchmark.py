#!/usr/bin/env python3
"""
Time a derp pipeline across throttle levels.

Builds a prime-filtering pipeline once and replays it against the same
random input at every requested power level, printing one line per run.
``DERP_MAX_PROCS`` (environment or ``.env``) caps the detected CPU count.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path
from statistics import mean
from typing import List

# Add project root to path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv()

from derp import ApplyConfig, DerpError, Option, Pipeline

log = logging.getLogger("derp.benchmark")

POWER_LEVELS = {
    25: Option.POWER_25,
    50: Option.POWER_50,
    75: Option.POWER_75,
    100: Option.POWER_100,
}


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--size",
        type=int,
        default=1_000_000,
        help="Number of random values to filter (default: 1000000)"
    )
    parser.add_argument(
        "--power",
        type=int,
        nargs="+",
        choices=sorted(POWER_LEVELS),
        default=sorted(POWER_LEVELS),
        help="Power levels to run (default: 25 50 75 100)"
    )
    parser.add_argument(
        "--repeat",
        type=int,
        default=3,
        help="Runs per power level; the mean is reported (default: 3)"
    )
    parser.add_argument(
        "--parallelism",
        type=int,
        help="Override the detected CPU count"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Random seed for the input (default: 0)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show executor debug logging"
    )
    return parser.parse_args()


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


def build_pipeline() -> Pipeline:
    return (
        Pipeline()
        .filter(is_prime, "Keep primes")
        .map(lambda i, v: v * v, "Square")
    )


def time_runs(
    pipe: Pipeline, data: List[int], option: Option, repeat: int, parallelism: int | None
) -> List[float]:
    timings: List[float] = []
    for _ in range(repeat):
        start = time.perf_counter()
        pipe.apply(data, option, Option.CLONE, parallelism=parallelism)
        timings.append(time.perf_counter() - start)
    return timings


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(name)s | %(message)s",
    )

    rng = random.Random(args.seed)
    data = [rng.randrange(256) for _ in range(args.size)]
    pipe = build_pipeline()

    try:
        for power in args.power:
            option = POWER_LEVELS[power]
            workers = ApplyConfig.from_options(
                [option], parallelism=args.parallelism
            ).num_workers
            timings = time_runs(pipe, data, option, args.repeat, args.parallelism)
            print(
                f"power-{power:<3} workers={workers:<3} "
                f"mean={mean(timings):.3f}s best={min(timings):.3f}s"
            )
    except DerpError as exc:
        log.error("Benchmark failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
