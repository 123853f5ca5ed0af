# -*- coding: utf-8 -*-
"""
client_decrypt.py  (Client role: fetch → check key → Decrypt)
-------------------------------------------------------------
Workflow:
  1. Load the public parameters and the user's private key.
  2. Refuse expired keys.
  3. Fetch the envelope from the object store.
  4. CP-ABE decrypt the GT element, then AES-GCM decrypt the payload.

Example:
  python -m cpabe.client_decrypt \\
      --key_dir   keys \\
      --key       keys/bob.key \\
      --owner     alice \\
      --object_id <OID> \\
      --store_dir keys/store
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from cpabe import envelope, keystore
from cpabe.config import Settings, configure_logging
from cpabe.errors import CPABEError, EnvelopeError, PolicyNotSatisfied
from cpabe.object_store import FileObjectStore

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> None:
    settings = Settings.from_env()

    ap = argparse.ArgumentParser(description="CP-ABE decrypt")
    ap.add_argument("--key_dir",   default=settings.key_dir,
                    help="Key directory produced by 'ta_local setup'")
    ap.add_argument("--key",       required=True,
                    help="Private key produced by 'ta_local keygen'")
    ap.add_argument("--owner",     required=True, help="Owner id the envelope was stored under")
    ap.add_argument("--object_id", required=True,
                    help="Object ID printed by owner_encrypt")
    ap.add_argument("--store_dir", default=settings.store_dir,
                    help="Envelope store directory")
    ap.add_argument("--out",       help="Write the plaintext to this file instead of stdout")
    args = ap.parse_args(argv)
    configure_logging(settings)

    # ── load key material ─────────────────────────────────────────────────────
    try:
        pub = keystore.load_public(args.key_dir)
        prv = keystore.load_private_key(args.key, pub)
    except (OSError, CPABEError) as exc:
        raise SystemExit(f"[CLIENT] Cannot load keys: {exc}")

    if prv.is_expired():
        raise SystemExit("[CLIENT] Key expired  (ask the authority for a new key)")

    # ── load envelope ─────────────────────────────────────────────────────────
    store = FileObjectStore(args.store_dir)
    try:
        blob = store.get(args.owner, args.object_id)
    except (FileNotFoundError, ValueError) as exc:
        raise SystemExit(f"[CLIENT] {exc}")

    # ── decrypt ───────────────────────────────────────────────────────────────
    try:
        pt, content_type = envelope.decrypt_bytes(pub, prv, blob)
    except PolicyNotSatisfied:
        raise SystemExit("[CLIENT] Access denied  (key attributes do not satisfy the policy)")
    except EnvelopeError as exc:
        raise SystemExit(f"[CLIENT] Integrity check FAILED: {exc}")
    except CPABEError as exc:
        raise SystemExit(f"[CLIENT] Decrypt FAILED: {exc}")

    if args.out:
        with open(args.out, "wb") as f:
            f.write(pt)
        print(f"[CLIENT] Plaintext written -> {args.out}  ({content_type or 'unknown type'})")
    else:
        print("[CLIENT] Plaintext:", pt.decode("utf-8", errors="replace"))


if __name__ == "__main__":
    main()
