# -*- coding: utf-8 -*-
"""
keystore.py  (authority key material on disk)
---------------------------------------------
  <key_dir>/public_key.dat          serialize_public_params(pub)
  <key_dir>/master_secret_key.dat   serialize_master_secret(pub, msk)

ensure_keys() is create-if-absent: Setup runs only when either file is
missing (or force=True). Files are written atomically, master secret first,
so a reader that finds public_key.dat always finds the matching secret.

Notes:
- In a real deployment the master secret never leaves the authority host.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Tuple, Union

from cpabe import cp_core
from cpabe.cp_core import MasterSecret, PrivateKey, PublicParams
from cpabe.serialize import (deserialize_master_secret, deserialize_private_key,
                             deserialize_public_params, serialize_master_secret,
                             serialize_private_key, serialize_public_params)

logger = logging.getLogger(__name__)

PUBLIC_KEY_FILE = "public_key.dat"
MASTER_SECRET_FILE = "master_secret_key.dat"

PathLike = Union[str, "os.PathLike[str]"]

_SETUP_LOCK = threading.Lock()


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def ensure_keys(key_dir: PathLike, curve: str = cp_core.DEFAULT_CURVE,
                force: bool = False) -> Tuple[PublicParams, MasterSecret]:
    """Load the (pub, msk) pair from key_dir, running Setup first if needed."""
    root = Path(key_dir)
    pub_path = root / PUBLIC_KEY_FILE
    msk_path = root / MASTER_SECRET_FILE

    with _SETUP_LOCK:
        if not force and pub_path.exists() and msk_path.exists():
            pub = load_public(root)
            return pub, load_master(root, pub)

        pub, msk = cp_core.setup(curve)
        _write_atomic(msk_path, serialize_master_secret(pub, msk))
        _write_atomic(pub_path, serialize_public_params(pub))
        logger.info("Wrote new key pair to %s (curve=%s)", root, curve)
        return pub, msk


def load_public(key_dir: PathLike) -> PublicParams:
    return deserialize_public_params((Path(key_dir) / PUBLIC_KEY_FILE).read_bytes())


def load_master(key_dir: PathLike, pub: PublicParams) -> MasterSecret:
    return deserialize_master_secret(pub, (Path(key_dir) / MASTER_SECRET_FILE).read_bytes())


def save_private_key(path: PathLike, pub: PublicParams, prv: PrivateKey) -> None:
    _write_atomic(Path(path), serialize_private_key(pub, prv))


def load_private_key(path: PathLike, pub: PublicParams) -> PrivateKey:
    return deserialize_private_key(pub, Path(path).read_bytes())
