"""The CCA world simulation: memory, attestation, root and realm worlds."""

from __future__ import annotations

import argparse
import logging
import time
from typing import List, Optional, Sequence, Tuple

from .gpt_defs import SIZE_1GB, U64_MASK, Gpi
from .memory import WORLD_COUNT, MemoryTracker
from .world import (
    World,
    WorldType,
    initialize_all_worlds,
    normal_world,
    realm_world,
    root_world,
    secure_world,
)

# C's sleep() truncates the requested 0.1 seconds to nothing.
ATTESTATION_DELAY = 0.0

_PCG_MULTIPLIER = 6364136223846793005
_U32_MASK = 0xFFFF_FFFF

# Rows: accessing world; columns: target world; both ordered SECURE, NS, ROOT, REALM.
VISIT_MATRIX = (
    (True, True, False, False),
    (False, True, False, False),
    (True, True, True, True),
    (False, True, False, True),
)

_REALM_PROGRAMS = (1, 2, 3)


def simulate_authentication(world: World) -> List[str]:
    """Attest a world; return the lines printed."""
    lines = [f"[CCA] Attestation World {int(world.type)}..."]
    print(lines[0], flush=True)
    time.sleep(ATTESTATION_DELAY)
    lines.append(f"[CCA] Attestation successful for World {int(world.type)}.")
    print(lines[1], flush=True)
    return lines


def _matrix_index(gpi: int) -> int:
    index = int(gpi) - Gpi.SECURE
    if not 0 <= index < len(VISIT_MATRIX):
        raise ValueError(f"GPI 0x{int(gpi):x} has no access rights")
    return index


def visit_allowed(current_gpi: int, target_gpi: int) -> bool:
    """Whether a world with ``current_gpi`` may access memory with ``target_gpi``."""
    return VISIT_MATRIX[_matrix_index(current_gpi)][_matrix_index(target_gpi)]


def pcg32_random(state: int, inc: int) -> Tuple[int, int]:
    """One PCG32 step: the 32-bit output and the next state."""
    old = state & U64_MASK
    new_state = (old * _PCG_MULTIPLIER + inc) & U64_MASK
    xorshifted = (((old >> 18) ^ old) >> 27) & _U32_MASK
    rot = old >> 59
    value = ((xorshifted >> rot) | (xorshifted << ((-rot) & 31))) & _U32_MASK
    return value, new_state


def run_realm_program(number: int) -> str:
    """Run one of the realm benchmark programs; return the line it prints."""
    if number not in _REALM_PROGRAMS:
        raise ValueError(f"no realm program {number}")
    line = f"Realm VM{number} is running..."
    print(line, flush=True)
    return line


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ccasim", description="Simulate CCA worlds and realm isolation."
    )
    parser.add_argument(
        "--memory-size",
        type=lambda text: int(text, 0),
        default=SIZE_1GB,
        help="bytes of memory given to each world",
    )
    parser.add_argument(
        "--settle", type=float, default=2.0, help="seconds to wait for the root world"
    )
    parser.add_argument(
        "--realm-wait", type=float, default=10.0, help="seconds to wait for the realm world"
    )
    args = parser.parse_args(argv)
    if args.memory_size < 0:
        parser.error("memory size must not be negative")
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the simulation."""
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    types = [WorldType.ROOT, WorldType.NORMAL, WorldType.SECURE, WorldType.REALM]
    entries = {
        WorldType.ROOT: root_world,
        WorldType.NORMAL: normal_world,
        WorldType.SECURE: secure_world,
        WorldType.REALM: realm_world,
    }
    worlds = initialize_all_worlds(types, entries)

    print("[GPT]========== CCA World Memory Allocation ==========")
    print("[CCA] Memory Allocation Starting...", flush=True)
    tracker = MemoryTracker(WORLD_COUNT)
    memories = [tracker.allocate(world, args.memory_size) for world in worlds]
    for world in worlds:
        print(
            f"{world.type.name.capitalize()} World allocated memory size: "
            f"0x{tracker.size_for(world):x} Bytes",
            flush=True,
        )

    print("[GPT]========== CCA World Attestation ==========")
    print("[CCA] Attestation Starting...", flush=True)
    for world in worlds:
        simulate_authentication(world)

    print("[GPT]========== CCA World Starting ==========", flush=True)
    root, realm = worlds[0], worlds[3]
    root.start()
    root.join(args.settle)
    realm.start()
    realm.join(args.realm_wait)

    for world, memory in zip(worlds, memories):
        tracker.free(world, memory)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())