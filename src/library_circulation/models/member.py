"""
Member models for the library circulation service.

The credential hash never leaves the repository layer; callers only learn
whether a member has a password set.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Member(BaseModel):
    """A library member as exposed to tools, resources and the CLI."""

    id: int = Field(..., description="Unique member identifier", ge=1, examples=[1, 7])

    name: str = Field(
        ...,
        description="Display name; not required to be unique",
        min_length=1,
        max_length=200,
        examples=["Ada Lovelace"],
    )

    has_credential: bool = Field(
        default=False,
        description="False for legacy members who cannot sign in until a reset",
    )

    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class MemberCreateSchema(BaseModel):
    """Schema for registering a member. A non-blank password is required."""

    name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=1, repr=False)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        return v

    @field_validator("password")
    @classmethod
    def reject_blank_password(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace")
        return v
