# -*- coding: utf-8 -*-
import json
import re
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

_OWNER = re.compile(r"[A-Za-z0-9_]+")


def check_owner(owner: str) -> str:
    """Owner ids name directories, so only [A-Za-z0-9_]+ is accepted."""
    if not isinstance(owner, str) or not _OWNER.fullmatch(owner):
        raise ValueError(f"owner id must match [A-Za-z0-9_]+, got {owner!r}")
    return owner


class FileObjectStore:
    """
    Envelopes on the local filesystem, one directory per owner:

      <root>/<owner>/<object_id>.cpabe   envelope bytes
      <root>/<owner>/<object_id>.json    metadata sidecar
    """

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def _owner_dir(self, owner: str) -> Path:
        return self.root_dir / check_owner(owner)

    def _paths(self, owner: str, object_id: str):
        # object ids are uuid4 strings; reject anything that could escape the owner dir
        oid = str(uuid.UUID(object_id))
        d = self._owner_dir(owner)
        return d / f"{oid}.cpabe", d / f"{oid}.json"

    def put(self, owner: str, envelope: bytes, name: str = "", policy: str = "",
            content_type: Optional[str] = None) -> str:
        object_id = str(uuid.uuid4())
        blob_path, meta_path = self._paths(owner, object_id)
        blob_path.parent.mkdir(parents=True, exist_ok=True)

        blob_path.write_bytes(envelope)
        record = {
            "object_id": object_id,
            "name": name,
            "policy": policy,
            "content_type": content_type,
            "created_at": int(time.time() * 1000),
            "size": len(envelope),
        }
        meta_path.write_text(json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8")
        return object_id

    def get(self, owner: str, object_id: str) -> bytes:
        blob_path, _ = self._paths(owner, object_id)
        if not blob_path.exists():
            raise FileNotFoundError(f"object not found: owner={owner} object_id={object_id}")
        return blob_path.read_bytes()

    def meta(self, owner: str, object_id: str) -> Dict[str, Any]:
        _, meta_path = self._paths(owner, object_id)
        if not meta_path.exists():
            raise FileNotFoundError(f"metadata not found: owner={owner} object_id={object_id}")
        return json.loads(meta_path.read_text(encoding="utf-8"))

    def list(self, owner: str) -> List[Dict[str, Any]]:
        d = self._owner_dir(owner)
        if not d.is_dir():
            return []
        records = [json.loads(p.read_text(encoding="utf-8")) for p in d.glob("*.json")]
        return sorted(records, key=lambda r: r.get("created_at", 0))
