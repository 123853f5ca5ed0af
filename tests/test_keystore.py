import threading
import uuid

import pytest

from cpabe import keystore
from cpabe.config import Settings
from cpabe.cp_core import decrypt, encrypt, keygen
from cpabe.errors import ConfigError
from cpabe.object_store import FileObjectStore


def test_ensure_keys_creates_once(tmp_path):
    pub, msk = keystore.ensure_keys(tmp_path)
    assert (tmp_path / keystore.PUBLIC_KEY_FILE).exists()
    assert (tmp_path / keystore.MASTER_SECRET_FILE).exists()

    pub2, msk2 = keystore.ensure_keys(tmp_path)
    assert pub2 == pub
    assert msk2 == msk

    pub3, _ = keystore.ensure_keys(tmp_path, force=True)
    assert pub3 != pub


def test_ensure_keys_concurrent_callers_share_one_setup(tmp_path):
    results = []

    def worker():
        results.append(keystore.ensure_keys(tmp_path))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 4
    assert all(pub == results[0][0] for pub, _ in results)


def test_private_key_file_roundtrip(tmp_path):
    pub, msk = keystore.ensure_keys(tmp_path / "keys")
    prv = keygen(pub, msk, ["A", "B"], user_id="bob")
    path = tmp_path / "bob.key"
    keystore.save_private_key(path, pub, prv)

    pub2 = keystore.load_public(tmp_path / "keys")
    prv2 = keystore.load_private_key(path, pub2)
    assert prv2 == prv

    ct, m = encrypt(pub2, "A and B")
    assert decrypt(pub2, prv2, ct).key == m


def test_object_store_put_get_list(tmp_path):
    store = FileObjectStore(str(tmp_path / "store"))
    oid1 = store.put("alice", b"one", name="a.txt", policy="A", content_type="text/plain")
    oid2 = store.put("alice", b"two!", name="b.txt", policy="B")
    store.put("bob", b"three")

    assert uuid.UUID(oid1).version == 4
    assert store.get("alice", oid1) == b"one"
    meta = store.meta("alice", oid2)
    assert meta["name"] == "b.txt"
    assert meta["policy"] == "B"
    assert meta["size"] == 4

    listed = store.list("alice")
    assert {r["object_id"] for r in listed} == {oid1, oid2}
    assert [r["created_at"] for r in listed] == sorted(r["created_at"] for r in listed)
    assert store.list("nobody") == []


def test_object_store_missing_and_unsafe_ids(tmp_path):
    store = FileObjectStore(str(tmp_path))
    with pytest.raises(FileNotFoundError):
        store.get("alice", str(uuid.uuid4()))
    with pytest.raises(ValueError):
        store.get("alice", "../../etc/passwd")

    # unsafe owner ids are refused, never rewritten onto another owner's directory
    for owner in ("../alice", "alice.b", "", "alice\n"):
        with pytest.raises(ValueError):
            store.put(owner, b"x")
    assert store.list("alice_b") == []
    assert list(tmp_path.iterdir()) == []


def test_settings_from_env():
    s = Settings.from_env({})
    assert s == Settings()
    assert s.curve == "MNT224"

    s = Settings.from_env({"CPABE_CURVE": "BN254", "CPABE_KEY_VALIDITY_DAYS": "7",
                           "CPABE_LOG_LEVEL": "debug"})
    assert s.curve == "BN254"
    assert s.key_validity_days == 7
    assert s.log_level == "DEBUG"

    # 0 days means keys never expire
    assert Settings.from_env({"CPABE_KEY_VALIDITY_DAYS": "0"}).key_validity_days == 0

    with pytest.raises(ConfigError):
        Settings.from_env({"CPABE_KEY_VALIDITY_DAYS": "soon"})
    with pytest.raises(ConfigError):
        Settings.from_env({"CPABE_KEY_VALIDITY_DAYS": "-1"})
