# -*- coding: utf-8 -*-
"""
ta_local.py  (authority utilities for CP-ABE)
---------------------------------------------
Commands:
  python -m cpabe.ta_local setup    --key_dir keys --curve MNT224
  python -m cpabe.ta_local keygen   --key_dir keys --attrs "dept_IT,role_admin" \\
                                    --user_id bob --email bob@example.com --out keys/bob.key
  python -m cpabe.ta_local validate --key_dir keys --key keys/bob.key

Notes:
- setup is create-if-absent; pass --force to re-key (every issued key and
  envelope becomes useless).
- keygen runs setup implicitly when the key directory is empty.
- validate prints the key's metadata as JSON and exits 1 if it has expired.
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from cpabe import cp_core, keystore
from cpabe.config import Settings, configure_logging
from cpabe.errors import CPABEError

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def _iso(ms: int) -> Optional[str]:
    if ms <= 0:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def parse_attrs(raw: str) -> List[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def cmd_setup(args: argparse.Namespace) -> None:
    pub, _msk = keystore.ensure_keys(args.key_dir, curve=args.curve, force=args.force)
    print(f"[PKG] Setup OK -> {args.key_dir}  (curve={pub.curve})")


def cmd_keygen(args: argparse.Namespace) -> None:
    if args.valid_days < 0:
        raise SystemExit("[PKG] KeyGen FAILED: --valid_days must be >= 0")
    pub, msk = keystore.ensure_keys(args.key_dir, curve=args.curve)
    attrs = parse_attrs(args.attrs)
    if not attrs:
        raise SystemExit("[PKG] KeyGen FAILED: no attributes given")

    prv = cp_core.keygen(pub, msk, attrs, user_id=args.user_id, user_email=args.email,
                         valid_for_ms=args.valid_days * DAY_MS if args.valid_days else None)
    keystore.save_private_key(args.out, pub, prv)
    print(f"[PKG] KeyGen OK -> {args.out}  (attrs={','.join(prv.attributes)}, "
          f"expires={_iso(prv.expiration_date)})")


def cmd_validate(args: argparse.Namespace) -> None:
    pub = keystore.load_public(args.key_dir)
    prv = keystore.load_private_key(args.key, pub)
    expired = prv.is_expired()
    print(json.dumps({
        "valid": not expired,
        "attributes": prv.attributes,
        "issued_to": prv.user_email or prv.user_id,
        "issued_on": _iso(prv.timestamp),
        "expires_on": _iso(prv.expiration_date),
    }, indent=2))
    if expired:
        raise SystemExit(1)


def main(argv: Optional[List[str]] = None) -> None:
    settings = Settings.from_env()

    ap = argparse.ArgumentParser(description="CP-ABE authority command-line tool")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # --- setup ---
    s0 = sub.add_parser("setup", help="Create public parameters and master secret")
    s0.add_argument("--key_dir", default=settings.key_dir, help="Key directory")
    s0.add_argument("--curve",   default=settings.curve, help=f"Pairing curve (default: {settings.curve})")
    s0.add_argument("--force",   action="store_true", help="Overwrite existing key material")
    s0.set_defaults(func=cmd_setup)

    # --- keygen ---
    s1 = sub.add_parser("keygen", help="Issue a private key for an attribute set")
    s1.add_argument("--key_dir",    default=settings.key_dir, help="Key directory")
    s1.add_argument("--curve",      default=settings.curve, help="Curve used if setup has not run yet")
    s1.add_argument("--attrs",      required=True, help='Comma-separated attributes, e.g. "A,B,C"')
    s1.add_argument("--user_id",    default="", help="User identity recorded in the key")
    s1.add_argument("--email",      default="", help="User e-mail recorded in the key")
    s1.add_argument("--valid_days", type=int, default=settings.key_validity_days,
                    help=f"Key lifetime in days, 0 = never expires (default: {settings.key_validity_days})")
    s1.add_argument("--out",        required=True, help="Output path for the private key")
    s1.set_defaults(func=cmd_keygen)

    # --- validate ---
    s2 = sub.add_parser("validate", help="Show a private key's metadata and expiry")
    s2.add_argument("--key_dir", default=settings.key_dir, help="Key directory")
    s2.add_argument("--key",     required=True, help="Private key path")
    s2.set_defaults(func=cmd_validate)

    args = ap.parse_args(argv)
    configure_logging(settings)
    try:
        args.func(args)
    except (CPABEError, OSError) as exc:
        raise SystemExit(f"[PKG] {args.cmd} FAILED: {exc}")


if __name__ == "__main__":
    main()
