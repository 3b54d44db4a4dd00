#!/usr/bin/env python3
"""Emit SQL that registers a machine module (e.g. the form-sync worker) and its API key hash."""

from __future__ import annotations

import argparse
import hashlib


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def render_sql(*, module_id: str, api_key: str, scopes: list[str], name: str | None = None) -> str:
    module_value = _quote_sql(module_id)
    scope_list = ", ".join(_quote_sql(scope) for scope in scopes)
    key_hint = _quote_sql(api_key[-4:])

    return f"""-- fuelwatch module credential bootstrap SQL

insert into modules (module_id, name, kind, enabled, scopes)
values ({module_value}, {_quote_sql(name or module_id)}, 'worker', true, array[{scope_list}]::text[])
on conflict (module_id) do update
set enabled = true, scopes = excluded.scopes;

insert into module_credentials (module_id, key_hint, key_hash, is_active)
select id, {key_hint}, {_quote_sql(hash_api_key(api_key))}, true
from modules
where module_id = {module_value};
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to register a machine module credential.")
    parser.add_argument("--module-id", default="form-sync", help="Value sent in the X-Module-Id header")
    parser.add_argument("--api-key", required=True, help="Plain API key; only its sha256 hash is stored")
    parser.add_argument("--name", help="Human readable module name")
    parser.add_argument(
        "--scope",
        action="append",
        dest="scopes",
        help="Scope to grant (repeatable, default: sync:write)",
    )
    args = parser.parse_args()

    print(
        render_sql(
            module_id=args.module_id,
            api_key=args.api_key,
            scopes=args.scopes or ["sync:write"],
            name=args.name,
        )
    )


if __name__ == "__main__":
    main()
