# ccasim

A small simulator of the Arm Confidential Compute Architecture (CCA).
It models four execution worlds (root, normal, secure and realm), each run
on its own thread; per-world memory bookkeeping; a two-level Granule
Protection Table (GPT) that assigns each physical granule to a physical
address space (PAS); and a realm monitor that creates realms with
encrypted private memory and named shared memory, and lets malicious
realms try to read each other's memory.

It needs a POSIX system: realms are started with `os.fork` and their
shared memory uses `multiprocessing.shared_memory`.

## Installation

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Commands

### `ccasim`

Runs the full simulation. It sets up the four worlds, gives each one an
allocation, attests them, starts the root world (which builds the GPT over
four 1 GB PAS regions for root, non-secure, secure and realm) and then the
realm world. The realm world creates ten malicious realms and starts each
one in its own process; each tries to read another realm's private memory,
which is encrypted with that realm's key, and its shared memory, which is
not. Finally every realm is waited for, destroyed, and the world memory is
freed.

```
ccasim [--memory-size BYTES] [--settle SECONDS] [--realm-wait SECONDS]
```

- `--memory-size`: bytes allocated to each world (default `0x40000000`,
  1 GB; any base prefix such as `0x` is accepted).
- `--settle`: seconds to wait for the root world before starting the realm
  world (default 2).
- `--realm-wait`: seconds to wait for the realm world (default 10).

### `ccasim-gpt-bench`

Builds the same GPT as the root world and then looks up random physical
addresses in the range 0 to 4 GB, printing the CPU time each lookup took
and the L1 entry found.

```
ccasim-gpt-bench [--iterations N] [--seed SEED]
```

- `--iterations`: number of lookups (default 5000).
- `--seed`: seed for the random addresses.

Both commands print the table construction details through `logging` at
INFO level.

## Library use

### Granule protection table (`ccasim.gpt`)

```python
from ccasim.gpt import GranuleProtectionTable, get_base_ptr
from ccasim.gpt_defs import PpsSize, PgsSize, SIZE_1GB

table = GranuleProtectionTable(PpsSize.PPS_4GB, PgsSize.PGS_4K)
for index in range(4):
    table.init_pas_region(get_base_ptr(index), SIZE_1GB, index)
table.init_l0()
table.init_l1()                        # returns the number of L1 tables
descriptor = table.check_pas_gpi(0xC000_0000)
print(hex(descriptor >> 60))           # 0xb: the realm PAS
```

`init_pas_region` gives regions 0 to 3 the GPIs root, non-secure, secure
and realm, all mapped by granule. `l1_region_count` validates the regions
(overflow, size against the protected space, overlaps, alignment) and
counts the L1 tables they need. `check_pas_gpi` returns the 64-bit L1 entry
holding sixteen 4-bit GPIs for the address's neighbourhood. Problems raise
`GptError`. `check_pas_overlap` and `get_base_ptr` are available as plain
functions.

### Encodings (`ccasim.gpt_defs`)

The `Gpi`, `PpsSize`, `PgsSize` and `MapType` enums, and helpers for the
descriptor formats and address arithmetic: `pps_t`, `pgs_p`, `l0_idx`,
`l0_region_count`, `l0_blk_desc`, `l0_blkd_gpi`, `l0_type`, `l0_tbl_desc`,
`l0_tbld_index`, `l1_idx_shift`, `l1_gpi_idx`, `l1_entry_count`,
`build_l1_desc`, `pas_attr`, `pas_attr_gpi`, `pas_attr_map_type` and the
alignment checks `is_l0_aligned` and `is_l1_aligned`.

### World memory (`ccasim.memory`)

`MemoryTracker` keeps one allocation slot per world. `allocate` returns a
zeroed `bytearray` and stores it in the first free slot; `memory_for` and
`size_for` look a world up by its type; `free` releases a tracked
allocation. Failures raise `AllocationError`.

### Realms (`ccasim.realm`)

```python
from ccasim.realm import RealmMonitor

with RealmMonitor() as monitor:
    first = monitor.create("realm1", ["realm1"], 4096, 2048, True)
    second = monitor.create("realm2", ["realm2"], 4096, 2048, False)
    for line in monitor.attempt_malicious_access(first):
        pass  # the report lines, also printed
```

`create` writes a marker string into the realm's private memory and
encrypts it with a random 32-byte key (`encrypt_memory`, a repeating-key
XOR, so applying it twice restores the data). `start` forks a child
process for the realm, `stop` terminates it, `wait_all` collects exit
statuses and `destroy` releases the realm's memory. Leaving the `with`
block destroys every remaining realm. Failures raise `RealmError`.

### Worlds (`ccasim.world`, `ccasim.simulation`)

`initialize_all_worlds` builds `World` objects whose `start` runs their
entry function on a thread and whose `join` waits for it. The entries are
`root_world`, `normal_world`, `secure_world` and `realm_world`.
`ccasim.simulation` also offers `visit_allowed` (the access matrix between
secure, non-secure, root and realm GPIs), `pcg32_random` (one PCG32 step)
and `simulate_authentication`.

## Limitations

- Isolation is simulated, not enforced: realms live in the same process
  memory before forking, and private memory is protected only by the XOR
  encryption. The GPT is a lookup structure; nothing checks memory accesses
  against it.
- The program path and arguments given to a realm are recorded but never
  executed; a realm's child process runs only the built-in normal or
  malicious behaviour. `run_realm_program` merely prints the line a realm
  benchmark program would.
- Attestation is a pair of log lines; no measurement or verification takes
  place.