from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator


class SignUpRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=6)
    confirm_password: str
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)

    @model_validator(mode="after")
    def _passwords_match(self) -> "SignUpRequest":
        if self.password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1)


class ProfileOut(BaseModel):
    id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    created_at: datetime | None = None


class SignUpOut(BaseModel):
    user_id: str
    email: str
    profile: ProfileOut


class SessionTokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    user: dict[str, Any] = Field(default_factory=dict)
    profile: ProfileOut


class SessionOut(BaseModel):
    user_id: str
    email: str | None = None
    role: str
    scopes: list[str] = Field(default_factory=list)
    is_admin: bool = False
    profile: ProfileOut | None = None
