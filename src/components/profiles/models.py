from dataclasses import dataclass, field
from typing import Any

from src.domain.entities import RoleType, UserProfile
from src.domain.errors import ErrorCode
from src.domain.policy import Caller


@dataclass
class ProvisionProfileInput:
    subject_id: str
    role: RoleType
    invited_by_code: str
    seed: dict[str, Any] = field(default_factory=dict)


@dataclass
class GetProfileInput:
    caller: Caller
    subject_id: str


@dataclass
class UpdateProfileInput:
    caller: Caller
    subject_id: str
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass
class ListProfilesInput:
    caller: Caller


@dataclass
class ProfileOutput:
    profile: UserProfile | None = None
    success: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None


@dataclass
class ProfileListOutput:
    profiles: list[UserProfile] = field(default_factory=list)
    success: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None
