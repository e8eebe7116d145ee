from dataclasses import dataclass

from src.domain.entities import InviteCode, InviteKind, RoleType
from src.domain.errors import ErrorCode
from src.domain.policy import Caller


@dataclass
class ValidateInviteInput:
    code: str


@dataclass
class CreateInviteInput:
    caller: Caller
    code: str | None = None
    kind: InviteKind = "single"
    role: RoleType = "user"
    expiry_days: int | None = None


@dataclass
class RedeemInviteInput:
    code: str
    subject_id: str


@dataclass
class RebindInviteInput:
    """Swap a provisional redemption entry for the real subject."""

    code: str
    from_subject_id: str
    to_subject_id: str


@dataclass
class ReleaseInviteInput:
    """Undo a redemption (compensating action)."""

    code: str
    subject_id: str


@dataclass
class ValidateOutput:
    valid: bool
    invite: InviteCode | None = None
    reason: str | None = None
    error_code: ErrorCode | None = None
    virtual: bool = False


@dataclass
class InviteOutput:
    invite: InviteCode | None = None
    success: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None


@dataclass
class RedeemOutput:
    invite: InviteCode | None = None
    success: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None
    virtual: bool = False
