from dataclasses import dataclass

from src.domain.entities import InviteCode, UserProfile
from src.domain.errors import ErrorCode


@dataclass
class SignupInput:
    email: str
    password: str
    invite_code: str
    name: str = ""
    language: str | None = None


@dataclass
class SignupOutput:
    profile: UserProfile | None = None
    invite: InviteCode | None = None
    success: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None
    # Set when signup succeeded but the invite still lists the provisional
    # subject instead of the new account.
    rebind_error_code: ErrorCode | None = None
