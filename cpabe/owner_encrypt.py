# -*- coding: utf-8 -*-
"""
owner_encrypt.py  (Data owner role: Encrypt + store)
----------------------------------------------------
Encrypts a fresh GT element under an access policy with CP-ABE, then
AES-GCM encrypts the actual data with a key derived from it, and stores
the resulting envelope in the owner's area of the object store.

Example:
  python -m cpabe.owner_encrypt \\
      --key_dir keys \\
      --policy "dept_IT and (role_admin or 2 of (a, b, c))" \\
      --plaintext "hello world" \\
      --owner alice \\
      --store_dir keys/store

Prints the object_id that client_decrypt needs.
"""

from __future__ import annotations

import argparse
import logging
import mimetypes
import os
from typing import List, Optional

from cpabe import envelope, keystore
from cpabe.config import Settings, configure_logging
from cpabe.errors import CPABEError
from cpabe.object_store import FileObjectStore, check_owner

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> None:
    settings = Settings.from_env()

    ap = argparse.ArgumentParser(description="CP-ABE encrypt")
    ap.add_argument("--key_dir",   default=settings.key_dir,
                    help="Key directory produced by 'ta_local setup'")
    ap.add_argument("--policy",    required=True,
                    help='Access policy string, e.g. "(A and B) or C"')
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--plaintext", help="Plaintext string to encrypt")
    src.add_argument("--in", dest="in_file", help="File to encrypt")
    ap.add_argument("--owner",     required=True, help="Owner id under which the envelope is stored")
    ap.add_argument("--store_dir", default=settings.store_dir,
                    help="Envelope store directory")
    args = ap.parse_args(argv)
    configure_logging(settings)

    try:
        check_owner(args.owner)
    except ValueError as exc:
        raise SystemExit(f"[OWNER] {exc}")

    if args.in_file is not None:
        with open(args.in_file, "rb") as f:
            data = f.read()
        name = os.path.basename(args.in_file)
        content_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    else:
        data = args.plaintext.encode("utf-8")
        name = ""
        content_type = "text/plain; charset=utf-8"

    try:
        # only the public parameters are needed to encrypt
        pub = keystore.load_public(args.key_dir)
        blob = envelope.encrypt_bytes(pub, args.policy, data, content_type=content_type)
    except FileNotFoundError:
        raise SystemExit(f"[OWNER] No public parameters in {args.key_dir}; run 'ta_local setup' first")
    except CPABEError as exc:
        raise SystemExit(f"[OWNER] Encrypt FAILED: {exc}")

    store = FileObjectStore(args.store_dir)
    obj_id = store.put(args.owner, blob, name=name, policy=args.policy, content_type=content_type)

    # Print obj_id first so callers can capture it easily
    print(obj_id)
    print(f"[OWNER] Envelope stored -> {args.store_dir}  (owner={args.owner}, "
          f"policy='{args.policy}', {len(blob)} bytes)")


if __name__ == "__main__":
    main()
