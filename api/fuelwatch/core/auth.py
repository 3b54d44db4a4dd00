from dataclasses import dataclass
from enum import Enum


class PrincipalType(str, Enum):
    HUMAN = "human"
    MACHINE = "machine"


@dataclass(slots=True)
class Principal:
    principal_type: PrincipalType
    subject: str
    scopes: set[str]
    role: str | None = None
    actor_id: str | None = None
    email: str | None = None
    access_token: str | None = None

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")

    @property
    def is_admin(self) -> bool:
        return self.principal_type is PrincipalType.HUMAN and self.role == "admin"
