# -*- coding: utf-8 -*-
"""
envelope.py  (hybrid encryption)
--------------------------------
The ABE layer only encrypts a random GT element; the payload itself is
sealed with AES-256-GCM under a key derived from that element.

  m, ct      = cp_core.encrypt(pub, policy)
  dek        = SHA-256(serialize(m))
  payload    = nonce(12) || AESGCM(dek).encrypt(nonce, data, aad=serialize(ct))

Envelope (.cpabe) container, three uint32 length-prefixed sections:

  [ciphertext][payload][content_type]

The serialized ciphertext doubles as associated data, so any change to the
policy tree or the ABE header breaks authentication. The symmetric key is
never written into the envelope.
"""

from __future__ import annotations

import hashlib
import logging
import os
from typing import Any, Optional, Tuple, Union

from charm.toolbox.pairinggroup import PairingGroup
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cpabe import cp_core
from cpabe.cp_core import PrivateKey, PublicParams
from cpabe.errors import EnvelopeError, PolicyNotSatisfied
from cpabe.policy import PolicyNode
from cpabe.serialize import Reader, Writer, deserialize_ciphertext, serialize_ciphertext

logger = logging.getLogger(__name__)

NONCE_SIZE = 12


# ── crypto helpers ────────────────────────────────────────────────────────────

def derive_key(group: PairingGroup, key_gt: Any) -> bytes:
    """Derive a 32-byte AES key from a GT element via SHA-256."""
    return hashlib.sha256(group.serialize(key_gt)).digest()


def aead_seal(key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> bytes:
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)


def aead_open(key: bytes, blob: bytes, aad: Optional[bytes] = None) -> bytes:
    if len(blob) < NONCE_SIZE:
        raise EnvelopeError("Sealed payload shorter than its nonce")
    try:
        return AESGCM(key).decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], aad)
    except InvalidTag as exc:
        raise EnvelopeError("AES-GCM authentication failed (wrong key or tampered data)") from exc


# ── container ─────────────────────────────────────────────────────────────────

def pack(ct_bytes: bytes, payload: bytes, content_type: Optional[str] = None) -> bytes:
    w = Writer()
    w.blob(ct_bytes)
    w.blob(payload)
    w.string(content_type or "")
    return w.getvalue()


def unpack(envelope: bytes) -> Tuple[bytes, bytes, Optional[str]]:
    """Split an envelope into (ciphertext bytes, sealed payload, content type)."""
    r = Reader(envelope)
    ct_bytes = r.blob("ciphertext section")
    payload = r.blob("payload section")
    content_type = r.string("content type")
    r.done("envelope")
    return ct_bytes, payload, content_type or None


# ── public API ────────────────────────────────────────────────────────────────

def encrypt_bytes(pub: PublicParams, policy: Union[str, PolicyNode], plaintext: bytes,
                  content_type: Optional[str] = None) -> bytes:
    ct, key_gt = cp_core.encrypt(pub, policy)
    ct_bytes = serialize_ciphertext(pub, ct)
    payload = aead_seal(derive_key(pub.group, key_gt), plaintext, aad=ct_bytes)
    logger.debug("Sealed %d byte(s) under a %d byte ABE header", len(plaintext), len(ct_bytes))
    return pack(ct_bytes, payload, content_type)


def decrypt_bytes(pub: PublicParams, prv: PrivateKey,
                  envelope: bytes) -> Tuple[bytes, Optional[str]]:
    """
    Open an envelope with a private key.

    Raises PolicyNotSatisfied when the key's attributes do not satisfy the
    embedded policy, EnvelopeError when authentication fails and
    SerializationError when the container is malformed.
    """
    ct_bytes, payload, content_type = unpack(envelope)
    ct = deserialize_ciphertext(pub, ct_bytes)

    res = cp_core.decrypt(pub, prv, ct)
    if not res.ok:
        raise PolicyNotSatisfied("Private key attributes do not satisfy the envelope policy")

    plaintext = aead_open(derive_key(pub.group, res.key), payload, aad=ct_bytes)
    return plaintext, content_type
