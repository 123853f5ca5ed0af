import struct

import pytest

from cpabe.cp_core import decrypt, encrypt, keygen
from cpabe.errors import SerializationError
from cpabe.policy import depth
from cpabe.serialize import (MAX_TREE_DEPTH, Writer, deserialize_ciphertext,
                             deserialize_master_secret, deserialize_policy,
                             deserialize_private_key, deserialize_public_params,
                             serialize_ciphertext, serialize_master_secret,
                             serialize_private_key, serialize_public_params, write_policy)

DEEP_POLICY = "A and (B or 2 of (C, D and E, F))"


def test_public_params_reload(pub):
    data = serialize_public_params(pub)
    pub2 = deserialize_public_params(data)
    assert pub2 == pub
    assert pub2.f is None
    assert serialize_public_params(pub2) == data


def test_reloaded_material_still_decrypts(pub, msk):
    pub2 = deserialize_public_params(serialize_public_params(pub))
    msk2 = deserialize_master_secret(pub2, serialize_master_secret(pub, msk))
    assert msk2 == msk

    ct, m = encrypt(pub2, DEEP_POLICY)
    prv = keygen(pub2, msk2, ["A", "D", "E", "F"], user_id="bob", user_email="bob@example.com",
                 valid_for_ms=60_000)

    prv2 = deserialize_private_key(pub, serialize_private_key(pub2, prv))
    assert prv2 == prv
    assert prv2.user_email == "bob@example.com"
    assert prv2.expiration_date == prv.timestamp + 60_000

    ct2 = deserialize_ciphertext(pub, serialize_ciphertext(pub2, ct))
    assert ct2 == ct
    assert depth(ct2.policy) >= 3
    assert decrypt(pub, prv2, ct2).key == m


def test_ciphertext_date_survives_both_halves(pub):
    ct, _m = encrypt(pub, "A or B")
    ct.encryption_date = (7 << 32) | 12345
    assert deserialize_ciphertext(pub, serialize_ciphertext(pub, ct)).encryption_date == ct.encryption_date


def test_unicode_metadata(pub, msk):
    prv = keygen(pub, msk, ["A"], user_id="zoë", user_email="zoë@example.com")
    prv2 = deserialize_private_key(pub, serialize_private_key(pub, prv))
    assert prv2.user_id == "zoë"


@pytest.mark.parametrize("cut", [0, 1, 3, 10, -1])
def test_truncated_ciphertext_rejected(pub, cut):
    ct, _m = encrypt(pub, DEEP_POLICY)
    data = serialize_ciphertext(pub, ct)
    with pytest.raises(SerializationError):
        deserialize_ciphertext(pub, data[:cut])


def test_trailing_bytes_rejected(pub, msk):
    prv = keygen(pub, msk, ["A"])
    with pytest.raises(SerializationError, match="trailing"):
        deserialize_private_key(pub, serialize_private_key(pub, prv) + b"\x00")


def test_length_prefix_past_end(pub):
    data = struct.pack(">I", 1 << 20) + b"MNT224"
    with pytest.raises(SerializationError, match="Truncated"):
        deserialize_public_params(data)


def test_unknown_curve_rejected():
    w = Writer()
    w.string("NO_SUCH_CURVE")
    with pytest.raises(SerializationError):
        deserialize_public_params(w.getvalue())


def test_garbage_element_rejected(pub):
    w = Writer()
    w.blob(b"\xff" * 16)
    w.blob(b"\xff" * 16)
    with pytest.raises(SerializationError):
        deserialize_master_secret(pub, w.getvalue())


def test_non_utf8_string_rejected(pub, msk):
    prv = keygen(pub, msk, ["A"], user_id="ab")
    data = serialize_private_key(pub, prv)
    needle = struct.pack(">I", 2) + b"ab"
    assert needle in data
    with pytest.raises(SerializationError, match="UTF-8"):
        deserialize_private_key(pub, data.replace(needle, struct.pack(">I", 2) + b"\xff\xfe", 1))


def _gate_header(k, n):
    w = Writer()
    w.uint32(k)
    w.uint32(n)
    return w.getvalue()


@pytest.mark.parametrize("k,n", [(0, 2), (3, 2), (1, 1), (2, 0)])
def test_invalid_tree_nodes_rejected(pub, k, n):
    with pytest.raises(SerializationError):
        deserialize_policy(pub, _gate_header(k, n) + b"\x00" * 64)


def test_tree_depth_limit(pub):
    data = _gate_header(1, 2) * (MAX_TREE_DEPTH + 1)
    with pytest.raises(SerializationError, match="deeper"):
        deserialize_policy(pub, data)


def test_unencrypted_tree_cannot_be_serialized(pub):
    ct, _m = encrypt(pub, "A and B")
    ct.policy = ct.policy.shape()
    with pytest.raises(SerializationError):
        serialize_ciphertext(pub, ct)


def test_element_from_wrong_group_rejected(pub):
    group = pub.group
    ct, _m = encrypt(pub, "A and B")

    # C must be in G1; put the G2 generator in its slot
    w = Writer()
    w.element(group, ct.c_tilde)
    w.element(group, pub.gp)
    w.uint32(0)
    w.uint32(ct.encryption_date & 0xFFFFFFFF)
    write_policy(w, group, ct.policy)
    with pytest.raises(SerializationError, match="expected G1"):
        deserialize_ciphertext(pub, w.getvalue())


def test_public_params_with_misplaced_elements_rejected(pub):
    group = pub.group
    w = Writer()
    w.string(pub.curve)
    w.element(group, pub.g)
    w.element(group, pub.h)
    w.element(group, pub.gp)
    w.element(group, pub.g)   # g_hat_alpha must be in GT
    with pytest.raises(SerializationError, match="expected GT"):
        deserialize_public_params(w.getvalue())
