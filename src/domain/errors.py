from enum import Enum


class ErrorCode(str, Enum):
    """Typed failure outcomes shared by all components."""

    INVITE_INVALID = "invalid-code"
    INVITE_EXPIRED = "code-expired"
    INVITE_EXHAUSTED = "code-exhausted"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not-found"
    VALIDATION = "validation"
    ACCOUNT_FAILED = "account-failed"
