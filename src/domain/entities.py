from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# --- Enums / Literals ---
RoleType = Literal["user", "admin"]
InviteKind = Literal["single", "multi"]


class WireModel(BaseModel):
    """Base for records stored in the KV store and sent over HTTP (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Invites ---

class InviteCode(WireModel):
    code: str
    kind: InviteKind = Field(default="multi", alias="type")
    role: RoleType = "user"
    expires_at: datetime
    issued_by: str
    is_active: bool = True
    used_by: list[str] = Field(default_factory=list)

    @property
    def is_exhausted(self) -> bool:
        """Single-use codes are spent once anybody has redeemed them."""
        return self.kind == "single" and len(self.used_by) > 0


# --- Users ---

class UserProfile(WireModel):
    # Domain payload (topics, progress, ...) is opaque here; unknown keys are kept.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    email: str | None = None
    role: RoleType = "user"
    language: str = "en"
    assigned_topics: list[str] = Field(default_factory=list)
    progress: dict[str, Any] = Field(default_factory=dict)
    onboarding_complete: bool = False
    points: int = 0
    badges: list[str] = Field(default_factory=list)
    invited_by_code: str | None = None


# --- Messages ---

class Message(WireModel):
    id: str
    user_id: str
    user_name: str
    content: str
    timestamp: datetime
    read: bool = False
    reply: str | None = None
    reply_timestamp: datetime | None = None

    @property
    def is_replied(self) -> bool:
        return self.reply is not None


# --- KV key namespaces ---

INVITE_PREFIX = "invite:"
USER_PREFIX = "user:"
MESSAGE_PREFIX = "msg:"


def invite_key(code: str) -> str:
    return f"{INVITE_PREFIX}{normalize_code(code)}"


def user_key(subject_id: str) -> str:
    return f"{USER_PREFIX}{subject_id}"


def message_key(message_id: str) -> str:
    return f"{MESSAGE_PREFIX}{message_id}"


def normalize_code(code: str) -> str:
    return code.strip().upper()
