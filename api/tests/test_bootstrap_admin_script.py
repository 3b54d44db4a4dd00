from __future__ import annotations

import hashlib
import subprocess
import sys
from pathlib import Path


SCRIPTS_DIR = Path(__file__).resolve().parents[2] / "scripts"


def _run_script(name: str, *args: str) -> str:
    completed = subprocess.run(
        [sys.executable, str(SCRIPTS_DIR / name), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


def test_bootstrap_admin_emits_sql_for_user_id_target() -> None:
    user_id = "00000000-0000-0000-0000-000000000123"
    output = _run_script("bootstrap_admin.py", "--user-id", user_id)

    assert "update auth.users" in output
    assert f"where id = '{user_id}'::uuid;" in output
    assert "jsonb_build_object('role', 'admin')" in output
    assert "insert into profiles (id, first_name, last_name, email)" in output
    assert "on conflict (id) do nothing;" in output


def test_bootstrap_admin_emits_sql_for_email_target() -> None:
    output = _run_script("bootstrap_admin.py", "--email", "o'brien@example.com", "--role", "user")

    assert "where email = 'o''brien@example.com';" in output
    assert "jsonb_build_object('role', 'user')" in output


def test_bootstrap_module_stores_only_key_hash() -> None:
    output = _run_script("bootstrap_module.py", "--api-key", "secret-form-key")

    expected_hash = hashlib.sha256(b"secret-form-key").hexdigest()
    assert "values ('form-sync', 'form-sync', 'worker', true, array['sync:write']::text[])" in output
    assert f"'{expected_hash}'" in output
    assert "secret-form-key" not in output
