# -*- coding: utf-8 -*-
"""
config.py  (deployment settings)
--------------------------------
Environment variables (CLI flags override them):

  CPABE_CURVE               pairing curve name          (default: MNT224)
  CPABE_KEY_DIR             authority key directory     (default: keys)
  CPABE_STORE_DIR           envelope store root         (default: keys/store)
  CPABE_KEY_VALIDITY_DAYS   default private key lifetime, 0 = no expiry (default: 365)
  CPABE_LOG_LEVEL           logging level               (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from cpabe.cp_core import DEFAULT_CURVE
from cpabe.errors import ConfigError


@dataclass(frozen=True)
class Settings:
    curve: str = DEFAULT_CURVE
    key_dir: str = "keys"
    store_dir: str = os.path.join("keys", "store")
    key_validity_days: int = 365
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        raw_days = env.get("CPABE_KEY_VALIDITY_DAYS", str(cls.key_validity_days))
        try:
            days = int(raw_days)
        except ValueError as exc:
            raise ConfigError(f"CPABE_KEY_VALIDITY_DAYS must be an integer, got {raw_days!r}") from exc
        if days < 0:
            raise ConfigError(f"CPABE_KEY_VALIDITY_DAYS must be >= 0, got {days}")

        return cls(
            curve=env.get("CPABE_CURVE", cls.curve),
            key_dir=env.get("CPABE_KEY_DIR", cls.key_dir),
            store_dir=env.get("CPABE_STORE_DIR", cls.store_dir),
            key_validity_days=days,
            log_level=env.get("CPABE_LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(settings: Settings) -> None:
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        raise ConfigError(f"Unknown log level {settings.log_level!r}")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
