import hashlib
import hmac
from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from fuelwatch.core.auth import Principal, PrincipalType
from fuelwatch.core.config import Settings, get_settings
from fuelwatch.services.repository import MachineCredentialRecord, RepositoryUnavailableError, get_repository

API_KEY_HEADER = "X-API-Key"
MODULE_ID_HEADER = "X-Module-Id"

USER_SCOPES = {"prices:read", "submission:write"}
ROLE_SCOPES: dict[str, set[str]] = {
    "user": USER_SCOPES,
    "admin": USER_SCOPES | {"moderation:read", "moderation:write", "prices:write"},
}


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def _match_module_key(credentials: list[MachineCredentialRecord], api_key: str) -> MachineCredentialRecord | None:
    key_hash = hash_api_key(api_key)
    for record in credentials:
        if hmac.compare_digest(record.key_hash, key_hash):
            return record
    return None


async def get_machine_principal(
    repository=Depends(get_repository),
    api_key: str | None = Header(default=None, alias=API_KEY_HEADER),
    module_id: str | None = Header(default=None, alias=MODULE_ID_HEADER),
) -> Principal:
    """Authenticate a worker module by its id and the sha256 of its API key."""
    if not api_key or not module_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"machine auth requires {API_KEY_HEADER} and {MODULE_ID_HEADER}",
        )

    try:
        credentials = await repository.get_machine_credentials(module_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    matched = _match_module_key(credentials, api_key)
    if matched is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid module credentials")

    return Principal(
        principal_type=PrincipalType.MACHINE,
        subject=matched.module_id,
        scopes=set(matched.scopes),
        actor_id=matched.module_db_id,
    )


async def get_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="human auth requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.supabase_url or not settings.supabase_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    user = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    role = _resolve_human_role(user)
    email = user.get("email")

    return Principal(
        principal_type=PrincipalType.HUMAN,
        subject=user_id,
        role=role,
        scopes=set(ROLE_SCOPES.get(role, ROLE_SCOPES["user"])),
        actor_id=user_id,
        email=email if isinstance(email, str) and email else None,
        access_token=token,
    )


async def get_optional_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal | None:
    if not authorization:
        return None
    return await get_human_principal(settings=settings, authorization=authorization)


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification failed",
        )

    return response.json()


def _resolve_human_role(user: dict[str, Any]) -> str:
    # Only app_metadata is writable by the service; user_metadata is set by the user at sign-up.
    app_metadata = user.get("app_metadata")
    if isinstance(app_metadata, dict):
        role = app_metadata.get("role")
        if isinstance(role, str) and role in ROLE_SCOPES:
            return role

    return "user"
