"""User and credential models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, computed_field

from taskmaster.models.common import CamelModel


class User(CamelModel):
    """A registered user. Never carries the password hash."""

    id: UUID
    username: str
    email: str
    first_name: str
    last_name: str
    preferences: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    last_active: datetime
    created_at: datetime
    updated_at: datetime

    @computed_field(alias="fullName")
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
