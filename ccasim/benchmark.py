"""Benchmark of random GPI lookups in a freshly built protection table."""

from __future__ import annotations

import argparse
import logging
import random
import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .gpt import GptError, GranuleProtectionTable, get_base_ptr
from .gpt_defs import SIZE_1GB
from .memory import WORLD_COUNT

GB = 1024 * 1024 * 1024
MAX_SIZE = 4 * GB
DEFAULT_ITERATIONS = 5000
RAND_BITS = 31


class _BitSource(Protocol):
    def getrandbits(self, k: int) -> int: ...


@dataclass(frozen=True)
class Probe:
    """One timed lookup: the address, the L1 entry found and the CPU time taken."""

    index: int
    address: int
    gpi: Optional[int]
    elapsed_ns: int


def root_world_sim() -> GranuleProtectionTable:
    """Build the protection table; a failing stage is reported and skipped."""
    print("[CCA] Root World is running.", flush=True)
    table = GranuleProtectionTable()
    print("[GPT] PAS region initialization starting...", flush=True)
    for index in range(WORLD_COUNT):
        try:
            table.init_pas_region(get_base_ptr(index), SIZE_1GB, index)
        except GptError:
            print("[GPT] PAS region initialization failed...", flush=True)

    print("[GPT] L0 GPT initialization starting...", flush=True)
    try:
        table.init_l0()
    except GptError:
        print("[GPT] L0 GPT initialization failed...", flush=True)

    print("[GPT] L1 GPT initialization starting...", flush=True)
    try:
        table.init_l1()
    except GptError:
        print("[GPT] L1 GPT initialization failed...", flush=True)
    return table


def random_address(rng: _BitSource, max_size: int) -> int:
    """A random address in ``[0, max_size]`` built from three 31-bit draws."""
    if max_size < 0:
        raise ValueError(f"max size must not be negative: {max_size}")
    high = rng.getrandbits(RAND_BITS)
    middle = rng.getrandbits(RAND_BITS)
    low = rng.getrandbits(RAND_BITS)
    address = (high << 32) | (middle << 16) | low
    return address % (max_size + 1)


def run_benchmark(
    table: GranuleProtectionTable, iterations: int, rng: _BitSource
) -> List[Probe]:
    """Time ``iterations`` lookups of random addresses and report each one."""
    if iterations < 0:
        raise ValueError(f"iterations must not be negative: {iterations}")
    probes: List[Probe] = []
    for index in range(iterations):
        address = random_address(rng, MAX_SIZE)
        start = time.process_time_ns()
        try:
            gpi: Optional[int] = table.check_pas_gpi(address)
        except GptError:
            gpi = None
        elapsed = time.process_time_ns() - start
        shown = "(nil)" if gpi is None else f"0x{gpi:x}"
        print(
            f"[GPT] [{index}]cycle: {float(elapsed):f} addr: 0x{address:x} gpi: {shown}",
            flush=True,
        )
        probes.append(Probe(index, address, gpi, elapsed))
    return probes


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ccasim-benchmark", description="Time random GPT lookups."
    )
    parser.add_argument(
        "--iterations", type=int, default=DEFAULT_ITERATIONS, help="number of lookups"
    )
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    args = parser.parse_args(argv)
    if args.iterations < 0:
        parser.error("iterations must not be negative")
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Build the table and run the lookup benchmark."""
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    table = root_world_sim()
    rng = random.Random(args.seed)
    run_benchmark(table, args.iterations, rng)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())