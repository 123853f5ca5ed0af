import os
import sys
import subprocess
from pathlib import Path

import re

OID_RE = re.compile(r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})", re.I)

def parse_object_id(output: str) -> str:
    m = OID_RE.search(output)
    assert m, f"Cannot parse object_id from output:\n{output}"
    return m.group(1)

ROOT = Path(__file__).resolve().parents[1]
PY = sys.executable

def _env():
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join([str(ROOT), env.get("PYTHONPATH", "")])
    env["CPABE_LOG_LEVEL"] = "WARNING"
    return env

def run(args, cwd=None) -> str:
    r = subprocess.run(args, cwd=cwd, env=_env(), capture_output=True, text=True)
    assert r.returncode == 0, (
        f"CMD failed:\n{args}\nSTDOUT:\n{r.stdout}\nSTDERR:\n{r.stderr}"
    )
    return r.stdout

def test_e2e_ok(tmp_path: Path):
    keys = tmp_path / "keys"
    store = keys / "store"
    bob = keys / "bob.key"

    # 1) setup
    run([PY, "-m", "cpabe.ta_local", "setup", "--key_dir", str(keys)])
    assert (keys / "public_key.dat").exists()
    assert (keys / "master_secret_key.dat").exists()

    # 2) KeyGen
    run([PY, "-m", "cpabe.ta_local", "keygen",
         "--key_dir", str(keys),
         "--attrs", "dept_IT,role_admin",
         "--user_id", "bob",
         "--email", "bob@example.com",
         "--out", str(bob)])

    # 3) Encrypt -> object_id
    out = run([PY, "-m", "cpabe.owner_encrypt",
               "--key_dir", str(keys),
               "--policy", "dept = IT and (role_admin or 2 of (a, b, c))",
               "--plaintext", "hello world",
               "--owner", "alice",
               "--store_dir", str(store)])
    object_id = parse_object_id(out)
    assert out.splitlines()[0] == object_id

    # 4) Client decrypt
    out2 = run([PY, "-m", "cpabe.client_decrypt",
                "--key_dir", str(keys),
                "--key", str(bob),
                "--owner", "alice",
                "--object_id", object_id,
                "--store_dir", str(store)])
    assert "Plaintext: hello world" in out2

def test_e2e_file_roundtrip_and_validate(tmp_path: Path):
    keys = tmp_path / "keys"
    store = keys / "store"
    bob = keys / "bob.key"
    src = tmp_path / "report.bin"
    dst = tmp_path / "report.out"
    src.write_bytes(bytes(range(256)) * 8)

    # keygen runs setup itself on an empty key directory
    run([PY, "-m", "cpabe.ta_local", "keygen",
         "--key_dir", str(keys),
         "--attrs", "A,B",
         "--email", "bob@example.com",
         "--out", str(bob)])

    out = run([PY, "-m", "cpabe.ta_local", "validate",
               "--key_dir", str(keys), "--key", str(bob)])
    assert '"valid": true' in out
    assert "bob@example.com" in out

    out = run([PY, "-m", "cpabe.owner_encrypt",
               "--key_dir", str(keys),
               "--policy", "A and B",
               "--in", str(src),
               "--owner", "alice",
               "--store_dir", str(store)])
    object_id = parse_object_id(out)

    run([PY, "-m", "cpabe.client_decrypt",
         "--key_dir", str(keys),
         "--key", str(bob),
         "--owner", "alice",
         "--object_id", object_id,
         "--store_dir", str(store),
         "--out", str(dst)])
    assert dst.read_bytes() == src.read_bytes()
