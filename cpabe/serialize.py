# -*- coding: utf-8 -*-
"""
serialize.py  (binary layouts)
------------------------------
Big-endian, no version byte. Group elements and strings are uint32
length-prefixed byte strings (elements use Charm's canonical encoding,
strings UTF-8); timestamps are int64.

  PublicParams : [curve][g][h][gp][g_hat_alpha]
  MasterSecret : [beta][g_alpha]
  PrivateKey   : [D][user_id][user_email][timestamp:8][expiry:8][count:4]
                 {[attr][D_j][D'_j]}*
  Ciphertext   : [C~][C][encryption_date: hi:4 lo:4][tree]
  tree         : leaf  [k=1:4][0:4][attr][C_y][C'_y]
                 gate  [k:4][n:4]{tree}*        (n = 0 marks a leaf)

Deserialization is strict: truncation, undecodable elements, elements from
the wrong group, invalid trees and trailing bytes all raise SerializationError.
"""

from __future__ import annotations

import struct
from typing import Any, List

from charm.toolbox.pairinggroup import PairingGroup, ZR, G1, G2, GT

from cpabe.cp_core import (Ciphertext, MasterSecret, PrivateKey, PrivateKeyComponent,
                           PublicParams, pairing_group)
from cpabe.errors import SerializationError, SetupError
from cpabe.policy import Gate, Leaf, PolicyNode

_U32 = struct.Struct(">I")
_I64 = struct.Struct(">q")

MAX_TREE_DEPTH = 64

_GROUP_NAMES = {ZR: "ZR", G1: "G1", G2: "G2", GT: "GT"}


# ============================================================
# Primitives
# ============================================================

class Writer:
    def __init__(self) -> None:
        self._parts: List[bytes] = []

    def uint32(self, value: int) -> None:
        if not 0 <= value <= 0xFFFFFFFF:
            raise SerializationError(f"uint32 out of range: {value}")
        self._parts.append(_U32.pack(value))

    def int64(self, value: int) -> None:
        try:
            self._parts.append(_I64.pack(value))
        except struct.error as exc:
            raise SerializationError(f"int64 out of range: {value}") from exc

    def blob(self, data: bytes) -> None:
        self.uint32(len(data))
        self._parts.append(bytes(data))

    def string(self, value: str) -> None:
        self.blob(value.encode("utf-8"))

    def element(self, group: PairingGroup, elem: Any) -> None:
        self.blob(group.serialize(elem))

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


class Reader:
    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def _take(self, n: int, what: str) -> bytes:
        if n > self.remaining:
            raise SerializationError(
                f"Truncated buffer reading {what}: need {n} byte(s) at offset {self.pos}, "
                f"{self.remaining} left"
            )
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def uint32(self, what: str = "uint32") -> int:
        return _U32.unpack(self._take(4, what))[0]

    def int64(self, what: str = "int64") -> int:
        return _I64.unpack(self._take(8, what))[0]

    def blob(self, what: str = "byte string") -> bytes:
        n = self.uint32(f"length of {what}")
        return self._take(n, what)

    def string(self, what: str = "string") -> str:
        raw = self.blob(what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SerializationError(f"{what} is not valid UTF-8") from exc

    def element(self, group: PairingGroup, expected: int, what: str = "group element") -> Any:
        raw = self.blob(what)
        try:
            elem = group.deserialize(raw)
        except Exception as exc:
            raise SerializationError(f"Cannot decode {what}") from exc
        if elem is None:
            raise SerializationError(f"Cannot decode {what}")
        if elem.type != expected:
            raise SerializationError(
                f"{what} is in {_GROUP_NAMES.get(elem.type, elem.type)}, "
                f"expected {_GROUP_NAMES[expected]}"
            )
        return elem

    def done(self, what: str) -> None:
        if self.remaining:
            raise SerializationError(f"{self.remaining} trailing byte(s) after {what}")


def _group_for(curve: str) -> PairingGroup:
    try:
        return pairing_group(curve)
    except SetupError as exc:
        raise SerializationError(f"Unknown pairing description {curve!r}") from exc


# ============================================================
# Public parameters / master secret
# ============================================================

def serialize_public_params(pub: PublicParams) -> bytes:
    group = pub.group
    w = Writer()
    w.string(pub.curve)
    w.element(group, pub.g)
    w.element(group, pub.h)
    w.element(group, pub.gp)
    w.element(group, pub.g_hat_alpha)
    return w.getvalue()


def deserialize_public_params(data: bytes) -> PublicParams:
    r = Reader(data)
    curve = r.string("pairing description")
    group = _group_for(curve)
    pub = PublicParams(
        curve=curve,
        g=r.element(group, G1, "g"),
        h=r.element(group, G1, "h"),
        gp=r.element(group, G2, "gp"),
        g_hat_alpha=r.element(group, GT, "g_hat_alpha"),
    )
    r.done("public parameters")
    return pub


def serialize_master_secret(pub: PublicParams, msk: MasterSecret) -> bytes:
    group = pub.group
    w = Writer()
    w.element(group, msk.beta)
    w.element(group, msk.g_alpha)
    return w.getvalue()


def deserialize_master_secret(pub: PublicParams, data: bytes) -> MasterSecret:
    group = pub.group
    r = Reader(data)
    msk = MasterSecret(beta=r.element(group, ZR, "beta"), g_alpha=r.element(group, G2, "g_alpha"))
    r.done("master secret")
    return msk


# ============================================================
# Private key
# ============================================================

def serialize_private_key(pub: PublicParams, prv: PrivateKey) -> bytes:
    group = pub.group
    w = Writer()
    w.element(group, prv.d)
    w.string(prv.user_id)
    w.string(prv.user_email)
    w.int64(prv.timestamp)
    w.int64(prv.expiration_date)
    w.uint32(len(prv.components))
    for comp in prv.components:
        w.string(comp.attr)
        w.element(group, comp.d)
        w.element(group, comp.dp)
    return w.getvalue()


def deserialize_private_key(pub: PublicParams, data: bytes) -> PrivateKey:
    group = pub.group
    r = Reader(data)
    d = r.element(group, G2, "D")
    user_id = r.string("user id")
    user_email = r.string("user email")
    timestamp = r.int64("timestamp")
    expiration_date = r.int64("expiration date")
    count = r.uint32("component count")

    comps: List[PrivateKeyComponent] = []
    for i in range(count):
        attr = r.string(f"attribute #{i}")
        comps.append(PrivateKeyComponent(
            attr=attr,
            d=r.element(group, G2, f"D_j of {attr!r}"),
            dp=r.element(group, G1, f"D'_j of {attr!r}"),
        ))
    r.done("private key")
    return PrivateKey(d=d, components=comps, user_id=user_id, user_email=user_email,
                      timestamp=timestamp, expiration_date=expiration_date)


# ============================================================
# Policy tree / ciphertext
# ============================================================

def write_policy(w: Writer, group: PairingGroup, node: PolicyNode) -> None:
    if isinstance(node, Leaf):
        if node.c is None or node.cp is None:
            raise SerializationError(f"Leaf {node.attr!r} carries no ciphertext components")
        w.uint32(1)
        w.uint32(0)
        w.string(node.attr)
        w.element(group, node.c)
        w.element(group, node.cp)
        return
    w.uint32(node.k)
    w.uint32(len(node.children))
    for child in node.children:
        write_policy(w, group, child)


def read_policy(r: Reader, group: PairingGroup, level: int = 1) -> PolicyNode:
    if level > MAX_TREE_DEPTH:
        raise SerializationError(f"Policy tree nested deeper than {MAX_TREE_DEPTH}")
    k = r.uint32("threshold")
    n = r.uint32("child count")

    if n == 0:
        if k != 1:
            raise SerializationError(f"Leaf node with threshold {k}")
        attr = r.string("leaf attribute")
        if not attr:
            raise SerializationError("Leaf node with empty attribute")
        return Leaf(attr, c=r.element(group, G1, f"C_y of {attr!r}"),
                    cp=r.element(group, G2, f"C'_y of {attr!r}"))

    if n < 2 or not 1 <= k <= n:
        raise SerializationError(f"Invalid threshold gate {k}of{n}")
    children = tuple(read_policy(r, group, level + 1) for _ in range(n))
    return Gate(k, children)


def serialize_policy(pub: PublicParams, node: PolicyNode) -> bytes:
    w = Writer()
    write_policy(w, pub.group, node)
    return w.getvalue()


def deserialize_policy(pub: PublicParams, data: bytes) -> PolicyNode:
    r = Reader(data)
    node = read_policy(r, pub.group)
    r.done("policy tree")
    return node


def serialize_ciphertext(pub: PublicParams, ct: Ciphertext) -> bytes:
    group = pub.group
    w = Writer()
    w.element(group, ct.c_tilde)
    w.element(group, ct.c)
    if ct.encryption_date < 0:
        raise SerializationError(f"Negative encryption date {ct.encryption_date}")
    w.uint32((ct.encryption_date >> 32) & 0xFFFFFFFF)
    w.uint32(ct.encryption_date & 0xFFFFFFFF)
    write_policy(w, group, ct.policy)
    return w.getvalue()


def deserialize_ciphertext(pub: PublicParams, data: bytes) -> Ciphertext:
    group = pub.group
    r = Reader(data)
    c_tilde = r.element(group, GT, "C~")
    c = r.element(group, G1, "C")
    hi = r.uint32("encryption date (high)")
    lo = r.uint32("encryption date (low)")
    policy = read_policy(r, group)
    r.done("ciphertext")
    return Ciphertext(c_tilde=c_tilde, c=c, policy=policy, encryption_date=(hi << 32) | lo)
