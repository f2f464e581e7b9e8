"""The four CCA worlds, each run on its own thread."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .gpt import GptError, GranuleProtectionTable, get_base_ptr
from .gpt_defs import SIZE_1GB
from .memory import WORLD_COUNT
from .realm import RealmMonitor

REALM_COUNT = 10
REALM_PROGRAM = "./benchmark/realm1"
MALICIOUS_ARGV = ("malicious_realm", "--role", "malicious")
REALM_PRIVATE_MEM_SIZE = 4096
REALM_SHARED_MEM_SIZE = 2048

Entry = Callable[[], Any]


class WorldType(IntEnum):
    """The kind of world; the value also names its memory slot."""

    ROOT = 0
    NORMAL = 1
    SECURE = 2
    REALM = 3


class WorldState(IntEnum):
    """Lifecycle of a world."""

    INITIALIZED = 0
    RUNNING = 1
    TERMINATED = 2


@dataclass(eq=False)
class World:
    """A world with its entry function and the thread that runs it."""

    world_id: int
    type: WorldType
    entry: Entry
    state: WorldState = WorldState.INITIALIZED
    result: Any = None
    thread: Optional[threading.Thread] = field(default=None, repr=False)

    def _run(self) -> None:
        self.result = self.entry()

    def start(self) -> bool:
        """Run the entry on a new thread; only an initialised world starts."""
        if self.state is not WorldState.INITIALIZED:
            return False
        thread = threading.Thread(
            target=self._run, name=f"world-{self.type.name.lower()}", daemon=True
        )
        try:
            thread.start()
        except RuntimeError:
            print(
                f"[CCA] Failed to start world of type {int(self.type)}",
                file=sys.stderr,
            )
            return False
        self.thread = thread
        self.state = WorldState.RUNNING
        return True

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the world's thread; True once it has finished."""
        if self.thread is None:
            return False
        self.thread.join(timeout)
        if self.thread.is_alive():
            return False
        self.state = WorldState.TERMINATED
        return True


def initialize_world(world_type: WorldType, entry: Entry, world_id: int) -> World:
    """A new world in the initialised state."""
    return World(world_id=world_id, type=WorldType(world_type), entry=entry)


def initialize_all_worlds(
    types: Sequence[WorldType],
    entries: Union[Sequence[Entry], Mapping[WorldType, Entry]],
) -> List[World]:
    """One world per type, numbered in order; entries are looked up by type."""
    return [
        initialize_world(world_type, entries[WorldType(world_type)], world_id)
        for world_id, world_type in enumerate(types)
    ]


def _announce(world_type: WorldType) -> str:
    """Print that a world is running and return the line printed."""
    message = f"[CCA] {world_type.name.capitalize()} World is running."
    print(message, flush=True)
    return message


def normal_world() -> str:
    """Entry of the normal world; returns the status line it printed."""
    return _announce(WorldType.NORMAL)


def secure_world() -> str:
    """Entry of the secure world; returns the status line it printed."""
    return _announce(WorldType.SECURE)


def root_world() -> Optional[GranuleProtectionTable]:
    """Build the granule protection table; None if any stage fails."""
    print("[CCA] Root World is running.", flush=True)
    table = GranuleProtectionTable()
    print("[GPT] PAS region initialization starting...", flush=True)
    try:
        for index in range(WORLD_COUNT):
            table.init_pas_region(get_base_ptr(index), SIZE_1GB, index)
    except GptError:
        print("[GPT] PAS region initialization failed...", flush=True)
        return None

    print("[GPT] L0 GPT initialization starting...", flush=True)
    try:
        table.init_l0()
    except GptError:
        print("[GPT] L0 GPT initialization failed...", flush=True)
        return None

    print("[GPT] L1 GPT initialization starting...", flush=True)
    try:
        table.init_l1()
    except GptError:
        print("[GPT] L1 GPT initialization failed...", flush=True)
        return None
    return table


def realm_world() -> Optional[Dict[int, int]]:
    """Run malicious realms against each other; return their exit statuses."""
    print("[GPT] ========== Realm VM Simulation ==========", flush=True)
    print("[CCA] Realm World is running.", flush=True)
    with RealmMonitor() as monitor:
        realm_ids = [
            monitor.create(
                REALM_PROGRAM,
                MALICIOUS_ARGV,
                REALM_PRIVATE_MEM_SIZE,
                REALM_SHARED_MEM_SIZE,
                True,
            )
            for _ in range(REALM_COUNT)
        ]
        for realm_id in realm_ids:
            if not monitor.start(realm_id):
                return None
        statuses = monitor.wait_all()
        for realm_id in realm_ids:
            monitor.destroy(realm_id)
    return statuses