"""Ciphertext-policy attribute-based encryption (CP-ABE) over threshold
access trees, with an AES-GCM hybrid envelope for arbitrary data.

Notes
-----
Policies are monotone boolean formulas over attribute strings: `and`, `or`
and `k of (x, y, ...)` thresholds, with comparisons such as `age >= 18`
folded into single attributes (`age_ge_18`). Negation is not supported.

The scheme runs on an asymmetric pairing (default curve MNT224); the
curve name travels with the serialized public parameters.

Examples
--------
Set up the authority and issue a key:

>>> from cpabe import setup, keygen
>>> pub, msk = setup()
>>> prv = keygen(pub, msk, ["dept_IT", "role_admin"], user_id="bob")

Encrypt bytes under a policy and decrypt them:

>>> from cpabe import encrypt_bytes, decrypt_bytes
>>> blob = encrypt_bytes(pub, "dept = IT and (role_admin or 2 of (a, b, c))", b"hello")
>>> decrypt_bytes(pub, prv, blob)
(b'hello', None)

The ABE layer alone encrypts a random GT element:

>>> from cpabe import encrypt, decrypt
>>> ct, m = encrypt(pub, "dept_IT or role_hr")
>>> decrypt(pub, prv, ct).key == m
True
"""

from cpabe.cp_core import (Ciphertext, DecryptResult, MasterSecret, PrivateKey,
                           PrivateKeyComponent, PublicParams, decrypt, encrypt, keygen, setup)
from cpabe.envelope import decrypt_bytes, encrypt_bytes
from cpabe.errors import (CPABEError, ConfigError, EnvelopeError, InvariantViolation, KeyGenError,
                          PolicyCompileError, PolicyError, PolicyNotSatisfied, SerializationError,
                          SetupError)
from cpabe.policy import Gate, Leaf, compile_policy

__version__ = "0.1.0"
