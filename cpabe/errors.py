# -*- coding: utf-8 -*-
"""
errors.py  (exception taxonomy)
-------------------------------
Every failure raised by the package derives from CPABEError.

PolicyNotSatisfied is an expected outcome (access denied), not a bug signal;
decrypt() reports it through DecryptResult.ok and only the convenience
layers raise it.
"""

from __future__ import annotations


class CPABEError(Exception):
    """Base class for all cpabe errors."""


class PolicyCompileError(CPABEError, ValueError):
    """Malformed policy string or invalid k-of-n operator."""


PolicyError = PolicyCompileError


class SetupError(CPABEError):
    pass


class KeyGenError(CPABEError):
    pass


class PolicyNotSatisfied(CPABEError):
    """The private key's attributes do not satisfy the ciphertext policy."""


class SerializationError(CPABEError, ValueError):
    """Truncated or structurally invalid byte buffer."""


class EnvelopeError(CPABEError):
    """AEAD authentication failed (wrong key or tampered envelope)."""


class InvariantViolation(CPABEError, RuntimeError):
    """Internal state that must be unreachable. Indicates a bug."""


class ConfigError(CPABEError, ValueError):
    pass
