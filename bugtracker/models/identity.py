"""Identity carried inside a session token, never stored server-side."""

from __future__ import annotations

from pydantic import BaseModel, Field

from bugtracker.models.enums import Role


class Identity(BaseModel):
    """Authenticated caller resolved from a session token."""

    id: str = Field(min_length=1)
    role: Role

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
