from __future__ import annotations

from functools import lru_cache
from typing import Any

import httpx

from fuelwatch.core.config import get_settings


class SupabaseAuthError(Exception):
    """Raised when Supabase rejects credentials or a sign-up."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class SupabaseAuthUnavailableError(Exception):
    """Raised when Supabase auth is not configured or cannot be reached."""


class SupabaseAuthClient:
    def __init__(
        self,
        supabase_url: str | None,
        anon_key: str | None,
        *,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (supabase_url or "").rstrip("/")
        self.anon_key = anon_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def sign_up(self, *, email: str, password: str, data: dict[str, Any]) -> dict[str, Any]:
        body = await self._post("/auth/v1/signup", json={"email": email, "password": password, "data": data})
        # With email confirmation on, Supabase returns the bare user object.
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        if not isinstance(user, dict) or not isinstance(user.get("id"), str):
            raise SupabaseAuthError("signup failed, please try again")
        return user

    async def sign_in_with_password(self, *, email: str, password: str) -> dict[str, Any]:
        body = await self._post(
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if not isinstance(body.get("access_token"), str) or not isinstance(body.get("user"), dict):
            raise SupabaseAuthError("login failed: no user data received", status_code=401)
        return body

    async def sign_out(self, *, access_token: str) -> None:
        await self._post("/auth/v1/logout", access_token=access_token, expect_body=False)

    async def _post(
        self,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        access_token: str | None = None,
        expect_body: bool = True,
    ) -> dict[str, Any]:
        if not self.base_url or not self.anon_key:
            raise SupabaseAuthUnavailableError("Supabase auth is not configured")

        headers = {"apikey": self.anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}{path}", json=json, params=params, headers=headers)
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            raise SupabaseAuthUnavailableError("Supabase auth unavailable") from exc

        if response.status_code >= 500:
            raise SupabaseAuthUnavailableError(f"Supabase auth failed with status {response.status_code}")
        if response.status_code >= 400:
            raise SupabaseAuthError(_error_message(response), status_code=response.status_code)
        if not expect_body or not response.content:
            return {}
        payload = response.json()
        return payload if isinstance(payload, dict) else {}


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or "Supabase auth request failed"
    if isinstance(payload, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return "Supabase auth request failed"


@lru_cache
def get_supabase_auth_client() -> SupabaseAuthClient:
    settings = get_settings()
    return SupabaseAuthClient(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout_seconds=settings.auth_timeout_seconds,
    )
