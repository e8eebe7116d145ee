from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.entities import InviteKind, RoleType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Invite Codes ---
class InviteCreateRequest(CamelModel):
    code: str | None = None
    kind: InviteKind = Field(default="single", alias="type")
    role: RoleType = "user"
    expiry_days: int | None = None
    # Accepted for compatibility; the issuer is always the verified caller.
    issued_by: str | None = None


# --- Signup ---
class SignupRequest(CamelModel):
    email: str
    password: str
    name: str = ""
    language: str | None = None
    invite_code: str


# --- Messages ---
class MessageCreateRequest(CamelModel):
    content: str
    # Display-only hints; identity comes from the bearer credential.
    user_id: str | None = None
    user_name: str | None = None


class MessageUpdateRequest(CamelModel):
    read: bool | None = None
    reply: str | None = None


# --- Auth ---
class Token(BaseModel):
    access_token: str
    token_type: str


class MeResponse(BaseModel):
    subject_id: str
    profile: dict[str, Any] | None = None
