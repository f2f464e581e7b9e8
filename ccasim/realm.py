"""Realms with encrypted private memory, shared memory and a monitor."""

from __future__ import annotations

import itertools
import logging
import os
import random
import signal
import sys
import time
from dataclasses import dataclass, field
from multiprocessing import shared_memory
from typing import Dict, List, Optional, Sequence, Union

Buffer = Union[bytearray, memoryview]

KEY_LENGTH = 32
MAX_ARGS = 31
READ_WINDOW = 256
SHM_NAME_LIMIT = 31
PREVIEW_BYTES = 16

log = logging.getLogger(__name__)

_next_id = itertools.count(1)


class RealmError(Exception):
    """Raised when a realm or its memory cannot be set up or started."""


def encrypt_memory(buffer: Buffer, key: bytes) -> None:
    """XOR ``buffer`` in place with ``key`` repeated; applying it twice restores it."""
    size = len(buffer)
    if size == 0 or not key:
        return
    reps, rem = divmod(size, len(key))
    stream = bytes(key) * reps + bytes(key[:rem])
    mixed = int.from_bytes(buffer, "little") ^ int.from_bytes(stream, "little")
    buffer[:] = mixed.to_bytes(size, "little")


def generate_random_key(length: int) -> bytes:
    """A key of ``length`` random bytes; empty when length is zero."""
    if length < 0:
        raise ValueError(f"key length must not be negative: {length}")
    return bytes(random.randrange(256) for _ in range(length))


def format_memory(buffer: Buffer) -> str:
    """Hex dump of the first bytes of ``buffer``, with '...' if there are more."""
    shown = " ".join(f"{b:02X}" for b in bytes(buffer[:PREVIEW_BYTES]))
    if len(buffer) > PREVIEW_BYTES:
        shown += " ..."
    return shown


def _write_text(buffer: Buffer, text: str) -> None:
    data = text.encode() + b"\0"
    count = min(len(data), len(buffer))
    buffer[:count] = data[:count]


def _read_text(buffer: Buffer, limit: int) -> str:
    raw = bytes(buffer[:limit])
    return raw.split(b"\0", 1)[0].decode("latin-1")


@dataclass
class RealmMemory:
    """A realm memory region, private or backed by named shared memory."""

    buffer: Buffer
    size: int
    is_shared: bool = False
    shm_name: str = ""
    _shm: Optional[shared_memory.SharedMemory] = field(default=None, repr=False)

    def destroy(self) -> None:
        """Release the region; shared memory is also unlinked."""
        shm, self._shm = self._shm, None
        self.buffer = bytearray()
        self.size = 0
        if shm is not None:
            shm.close()
            try:
                shm.unlink()
            except FileNotFoundError:
                pass


def _open_fresh(name: str, size: int) -> shared_memory.SharedMemory:
    try:
        return shared_memory.SharedMemory(name=name, create=True, size=size)
    except FileExistsError:
        stale = shared_memory.SharedMemory(name=name)
        stale.close()
        stale.unlink()
        return shared_memory.SharedMemory(name=name, create=True, size=size)


def create_shared_memory(name: str, size: int) -> RealmMemory:
    """Create a named shared memory region of ``size`` bytes."""
    if size <= 0:
        raise RealmError(f"shared memory size must be positive: {size}")
    shm_name = f"realm_shm_{name}"[: SHM_NAME_LIMIT - 1]
    try:
        shm = _open_fresh(shm_name, size)
    except OSError as exc:
        raise RealmError(f"cannot create shared memory {shm_name}: {exc}") from exc
    return RealmMemory(shm.buf, size, True, "/" + shm_name, shm)


@dataclass
class RealmContext:
    """Everything the monitor knows about one realm."""

    id: int
    program: str
    argv: List[str]
    private_memory: RealmMemory
    key: bytes
    is_malicious: bool = False
    shared_memory: Optional[RealmMemory] = None
    pid: Optional[int] = None


class RealmMonitor:
    """Creates, runs and tears down realms."""

    attack_delay = 1.0
    run_time = 10.0

    def __init__(self) -> None:
        self.realms: List[RealmContext] = []

    def __enter__(self) -> "RealmMonitor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        for realm in list(self.realms):
            self.destroy(realm.id)

    def create(
        self,
        program: str,
        argv: Optional[Sequence[str]],
        private_mem_size: int,
        shared_mem_size: int,
        is_malicious: bool = False,
    ) -> int:
        """Create a realm and return its id."""
        realm_id = next(_next_id)
        if private_mem_size <= 0:
            raise RealmError(f"invalid private memory size: {private_mem_size}")
        if shared_mem_size < 0:
            raise RealmError(f"invalid shared memory size: {shared_mem_size}")
        args = list(argv or [])[:MAX_ARGS]

        private = RealmMemory(bytearray(private_mem_size), private_mem_size)
        log.info("[REALM] Realm %d Private Mem Size: 0x%x", realm_id, private_mem_size)
        _write_text(private.buffer, f"Realm {realm_id} private data")
        key = generate_random_key(KEY_LENGTH)
        encrypt_memory(private.buffer, key)
        log.info("[REALM] Realm %d encrypted memory:", realm_id)
        log.info("        Memory content: %s", format_memory(private.buffer))

        shared = None
        if shared_mem_size > 0:
            shared = create_shared_memory(f"realm{realm_id}_shared", shared_mem_size)
            _write_text(shared.buffer, f"Realm {realm_id} shared data")

        self.realms.append(
            RealmContext(realm_id, program, args, private, key, is_malicious, shared)
        )
        return realm_id

    def find(self, realm_id: int) -> RealmContext:
        """The realm with this id."""
        for realm in self.realms:
            if realm.id == realm_id:
                return realm
        raise RealmError(f"no realm with id {realm_id}")

    def attempt_malicious_access(self, attacker_id: int) -> List[str]:
        """Have a malicious realm read another realm's memory; return the report."""
        attacker = next(
            (r for r in self.realms if r.id == attacker_id and r.is_malicious), None
        )
        if attacker is None:
            return []
        target = next((r for r in self.realms if r.id != attacker_id), None)
        if target is None:
            return []

        lines = [
            f"[REALM] Realm {attacker_id} (malicious) attempting to access "
            f"Realm {target.id} private memory..."
        ]
        private = target.private_memory
        seen = _read_text(private.buffer, min(READ_WINDOW, private.size))
        if "private data" in seen:
            lines.append(
                f"[REALM] ATTACK SUCCESSFUL! Realm {attacker_id} accessed "
                f"Realm {target.id} private data: {seen}"
            )
        else:
            lines.append(
                f"[REALM] ATTACK FAILED! Realm {attacker_id} cannot access "
                f"Realm {target.id} private memory"
            )

        shared = target.shared_memory
        if shared is not None:
            lines.append(
                f"[REALM] Realm {attacker_id} attempting to access "
                f"Realm {target.id} shared memory..."
            )
            seen = _read_text(shared.buffer, min(READ_WINDOW, shared.size))
            if "shared data" in seen:
                lines.append(
                    f"[REALM] Access to shared memory successful (expected): {seen}"
                )
            else:
                lines.append("[REALM] Shared memory access failed unexpectedly")

        for line in lines:
            print(line, flush=True)
        return lines

    def _run_child(self, realm: RealmContext) -> None:
        role = "malicious" if realm.is_malicious else "normal"
        print(
            f"[REALM] Realm {realm.id} ({role}) starting program: {realm.program}",
            flush=True,
        )
        if realm.is_malicious:
            time.sleep(self.attack_delay)
            self.attempt_malicious_access(realm.id)
            return

        print(f"[REALM] Realm {realm.id} running normally", flush=True)
        print(f"[REALM] Realm {realm.id} decrypting memory...", flush=True)
        private = realm.private_memory
        encrypt_memory(private.buffer, realm.key)
        text = _read_text(private.buffer, private.size)
        print(f"[REALM] Realm {realm.id} accessing its own private data: {text}", flush=True)
        encrypt_memory(private.buffer, realm.key)
        if realm.shared_memory is not None:
            shared = realm.shared_memory
            text = _read_text(shared.buffer, shared.size)
            print(f"[REALM] Realm {realm.id} accessing its own shared data: {text}", flush=True)
        time.sleep(self.run_time)

    def start(self, realm_id: int) -> bool:
        """Run the realm in a child process; False if there is no such realm."""
        realm = next((r for r in self.realms if r.id == realm_id), None)
        if realm is None:
            return False
        try:
            pid = os.fork()
        except (AttributeError, OSError) as exc:
            raise RealmError(f"cannot start realm {realm_id}: {exc}") from exc

        if pid == 0:
            code = 1
            try:
                self._run_child(realm)
                code = 0
            finally:
                try:
                    sys.stdout.flush()
                    sys.stderr.flush()
                finally:
                    os._exit(code)

        realm.pid = pid
        log.info("[REALM] Realm %d started with PID %d", realm_id, pid)
        return True

    def stop(self, realm_id: int) -> bool:
        """Terminate a running realm; False if it is unknown or not running."""
        realm = next(
            (r for r in self.realms if r.id == realm_id and r.pid is not None), None
        )
        if realm is None or realm.pid is None:
            return False
        try:
            os.kill(realm.pid, signal.SIGTERM)
        except ProcessLookupError:
            pass
        try:
            os.waitpid(realm.pid, 0)
        except ChildProcessError:
            pass
        realm.pid = None
        return True

    def wait_all(self) -> Dict[int, int]:
        """Wait for every running realm; return each one's exit status."""
        statuses: Dict[int, int] = {}
        for realm in self.realms:
            if realm.pid is None:
                continue
            _, status = os.waitpid(realm.pid, 0)
            code = os.WEXITSTATUS(status) if os.WIFEXITED(status) else 0
            statuses[realm.id] = code
            realm.pid = None
            print(f"Realm {realm.id} exited with status {code}", flush=True)
        return statuses

    def destroy(self, realm_id: int) -> None:
        """Stop a realm if needed, release its memory and forget it."""
        realm = next((r for r in self.realms if r.id == realm_id), None)
        if realm is None:
            return
        if realm.pid is not None:
            self.stop(realm_id)
        realm.private_memory.destroy()
        if realm.shared_memory is not None:
            realm.shared_memory.destroy()
        self.realms.remove(realm)