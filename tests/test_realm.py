import pytest

from ccasim.realm import (
    KEY_LENGTH,
    MAX_ARGS,
    RealmError,
    RealmMonitor,
    create_shared_memory,
    encrypt_memory,
    format_memory,
    generate_random_key,
)


@pytest.fixture
def monitor():
    mon = RealmMonitor()
    mon.attack_delay = 0.0
    mon.run_time = 30.0
    yield mon
    for realm in list(mon.realms):
        mon.destroy(realm.id)


def decrypted_text(realm):
    data = bytearray(realm.private_memory.buffer)
    encrypt_memory(data, realm.key)
    return bytes(data).split(b"\0", 1)[0].decode()


def test_encrypt_is_an_involution():
    original = bytearray(b"Realm 1 private data" + bytes(50))
    data = bytearray(original)
    key = generate_random_key(KEY_LENGTH)
    encrypt_memory(data, key)
    encrypt_memory(data, key)
    assert data == original


def test_encrypt_zeroes_yields_repeated_key():
    key = bytes([1, 2, 3])
    data = bytearray(7)
    encrypt_memory(data, key)
    assert bytes(data) == (key * 3)[:7]


def test_encrypt_with_empty_key_leaves_buffer_alone():
    data = bytearray(b"abc")
    encrypt_memory(data, b"")
    assert data == bytearray(b"abc")


def test_generate_random_key_length():
    assert len(generate_random_key(KEY_LENGTH)) == KEY_LENGTH
    assert generate_random_key(0) == b""


def test_generate_random_key_negative_raises():
    with pytest.raises(ValueError):
        generate_random_key(-1)


def test_format_memory_short_buffer():
    assert format_memory(b"\x00\x01\xff") == "00 01 FF"


def test_format_memory_truncates_after_sixteen_bytes():
    text = format_memory(bytes(20))
    assert text.endswith(" ...")
    assert text.count("00") == 16


def test_shared_memory_round_trip():
    region = create_shared_memory("pytest_rt", 64)
    try:
        assert region.is_shared
        assert region.size == 64
        region.buffer[:5] = b"hello"
        assert bytes(region.buffer[:5]) == b"hello"
    finally:
        region.destroy()
    assert region.size == 0


def test_shared_memory_zero_size_rejected():
    with pytest.raises(RealmError):
        create_shared_memory("pytest_zero", 0)


def test_create_encrypts_private_memory(monitor):
    realm_id = monitor.create("./benchmark/realm1", ["malicious_realm"], 4096, 2048, True)
    realm = monitor.find(realm_id)
    assert realm.private_memory.size == 4096
    assert len(realm.key) == KEY_LENGTH
    assert decrypted_text(realm) == f"Realm {realm_id} private data"


def test_create_writes_shared_data(monitor):
    realm_id = monitor.create("prog", None, 4096, 2048, False)
    shared = monitor.find(realm_id).shared_memory
    text = bytes(shared.buffer[:64]).split(b"\0", 1)[0].decode()
    assert text == f"Realm {realm_id} shared data"


def test_create_without_shared_memory(monitor):
    realm_id = monitor.create("prog", None, 128, 0, False)
    assert monitor.find(realm_id).shared_memory is None


def test_ids_increase(monitor):
    first = monitor.create("prog", None, 128, 0, False)
    second = monitor.create("prog", None, 128, 0, False)
    assert second == first + 1


def test_argv_is_limited(monitor):
    args = [str(i) for i in range(40)]
    realm_id = monitor.create("prog", args, 128, 0, False)
    assert monitor.find(realm_id).argv == args[:MAX_ARGS]


def test_create_with_zero_private_size_raises(monitor):
    with pytest.raises(RealmError):
        monitor.create("prog", None, 0, 0, False)


def test_find_unknown_raises(monitor):
    with pytest.raises(RealmError):
        monitor.find(10 ** 9)


def test_malicious_access_fails_on_private_and_reads_shared(monitor):
    attacker = monitor.create("prog", None, 4096, 2048, True)
    target = monitor.create("prog", None, 4096, 2048, True)
    lines = monitor.attempt_malicious_access(attacker)
    assert any("ATTACK FAILED" in line for line in lines)
    assert any(f"Realm {target} shared data" in line for line in lines)


def test_malicious_access_succeeds_on_plaintext(monitor):
    attacker = monitor.create("prog", None, 4096, 0, True)
    target = monitor.create("prog", None, 4096, 0, False)
    realm = monitor.find(target)
    encrypt_memory(realm.private_memory.buffer, realm.key)
    lines = monitor.attempt_malicious_access(attacker)
    assert any("ATTACK SUCCESSFUL" in line for line in lines)


def test_non_malicious_realm_does_not_attack(monitor):
    attacker = monitor.create("prog", None, 4096, 0, False)
    monitor.create("prog", None, 4096, 0, False)
    assert monitor.attempt_malicious_access(attacker) == []


def test_start_unknown_realm_returns_false(monitor):
    assert monitor.start(10 ** 9) is False


def test_malicious_realm_runs_and_exits(monitor):
    attacker = monitor.create("prog", None, 4096, 2048, True)
    monitor.create("prog", None, 4096, 2048, True)
    assert monitor.start(attacker) is True
    assert monitor.find(attacker).pid > 0
    assert monitor.wait_all() == {attacker: 0}
    assert monitor.find(attacker).pid is None


def test_normal_realm_can_be_stopped(monitor):
    realm_id = monitor.create("prog", None, 4096, 0, False)
    assert monitor.start(realm_id) is True
    assert monitor.stop(realm_id) is True
    assert monitor.find(realm_id).pid is None
    assert monitor.stop(realm_id) is False


def test_destroy_removes_realm(monitor):
    realm_id = monitor.create("prog", None, 4096, 2048, False)
    monitor.destroy(realm_id)
    assert [r.id for r in monitor.realms] == []
    with pytest.raises(RealmError):
        monitor.find(realm_id)