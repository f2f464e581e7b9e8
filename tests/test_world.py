import pytest

from ccasim.gpt_defs import SIZE_1GB, Gpi, build_l1_desc
from ccasim.world import (
    World,
    WorldState,
    WorldType,
    initialize_all_worlds,
    initialize_world,
    normal_world,
    root_world,
    secure_world,
)


def test_initialize_world_sets_fields():
    def entry():
        return "done"

    world = initialize_world(WorldType.SECURE, entry, 7)
    assert world.world_id == 7
    assert world.type is WorldType.SECURE
    assert world.state is WorldState.INITIALIZED
    assert world.entry is entry


def test_initialize_all_worlds_picks_entries_by_type():
    entries = {
        WorldType.ROOT: lambda: "root",
        WorldType.NORMAL: lambda: "normal",
        WorldType.SECURE: lambda: "secure",
        WorldType.REALM: lambda: "realm",
    }
    types = [WorldType.REALM, WorldType.ROOT]
    worlds = initialize_all_worlds(types, entries)
    assert [w.world_id for w in worlds] == [0, 1]
    assert [w.type for w in worlds] == types
    assert worlds[0].entry() == "realm"
    assert worlds[1].entry() == "root"


def test_initialize_all_worlds_accepts_sequence():
    entries = [lambda: 0, lambda: 1, lambda: 2, lambda: 3]
    worlds = initialize_all_worlds(list(WorldType), entries)
    assert [w.entry() for w in worlds] == [0, 1, 2, 3]


def test_start_and_join_runs_entry():
    world = initialize_world(WorldType.NORMAL, lambda: 42, 1)
    assert world.start() is True
    assert world.join(5) is True
    assert world.result == 42
    assert world.state is WorldState.TERMINATED


def test_start_only_from_initialized():
    world = initialize_world(WorldType.NORMAL, lambda: None, 1)
    assert world.start() is True
    assert world.start() is False
    world.join(5)
    assert world.start() is False


def test_join_without_start():
    world = World(0, WorldType.ROOT, lambda: None)
    assert world.join(0.1) is False
    assert world.state is WorldState.INITIALIZED


def test_normal_and_secure_world_output(capsys):
    normal_world()
    secure_world()
    out = capsys.readouterr().out
    assert "[CCA] Normal World is running." in out
    assert "[CCA] Secure World is running." in out


def test_root_world_builds_table(capsys):
    table = root_world()
    assert "[CCA] Root World is running." in capsys.readouterr().out
    assert table.check_pas_gpi(0) == build_l1_desc(Gpi.ROOT)
    assert table.check_pas_gpi(SIZE_1GB + 0x1234) == build_l1_desc(Gpi.NS)
    assert table.check_pas_gpi(2 * SIZE_1GB) == build_l1_desc(Gpi.SECURE)
    assert table.check_pas_gpi(4 * SIZE_1GB - 1) == build_l1_desc(Gpi.REALM)
    assert len(table.l1_tables) == 4


@pytest.mark.parametrize("world_type", list(WorldType))
def test_world_type_round_trip(world_type):
    assert WorldType(int(world_type)) is world_type