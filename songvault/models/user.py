"""Users, roles and the per-request identity claim."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass
class User:
    """Stored user: identity-provider subject -> role."""
    uid: str
    username: str
    role: Role
    created_at: datetime


@dataclass
class Identity:
    """Verified caller, rebuilt from the bearer token on every request."""
    subject_id: str
    email: Optional[str]
    name: Optional[str] = None
    role: Role = Role.USER

    @property
    def can_manage_catalog(self) -> bool:
        return self.role is Role.ADMIN
