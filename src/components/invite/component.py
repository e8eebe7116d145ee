"""
Invite component - invite code registry.

Holds the single-use / multi-use / expiry state machine. Every write is one
compare-and-set of the full record, so a single-use code can be redeemed at
most once even when redemptions race.
"""

import logging
import re
import secrets
import string
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from src.core.atomic import RecordNotFoundError, RetriesExhaustedError, atomic_update
from src.core.ports.kv import KVStorePort
from src.domain.entities import InviteCode, invite_key, normalize_code
from src.domain.errors import ErrorCode
from src.domain.policy import PolicyEngine
from src.rules.models import InviteRules

from .models import (
    CreateInviteInput,
    InviteOutput,
    RebindInviteInput,
    RedeemInviteInput,
    RedeemOutput,
    ReleaseInviteInput,
    ValidateInviteInput,
    ValidateOutput,
)
from .ports import FallbackCodesPort, TimePort

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^[A-Z0-9_-]{3,64}$")
CODE_ALPHABET = string.ascii_uppercase + string.digits


class _RedemptionRejected(Exception):
    def __init__(self, error_code: ErrorCode, reason: str):
        self.error_code = error_code
        self.reason = reason
        super().__init__(reason)


def _as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def check_usable(invite: InviteCode, now: datetime) -> tuple[ErrorCode, str] | None:
    """
    Return (error_code, reason) if the invite cannot be redeemed right now.

    Checks run in order: active, not expired, not exhausted. A spent
    single-use code is also inactive; it reports exhausted rather than inactive.
    """
    if not invite.is_active:
        if invite.is_exhausted:
            return ErrorCode.INVITE_EXHAUSTED, "already used"
        return ErrorCode.INVITE_INVALID, "inactive"

    if _as_utc(invite.expires_at) < _as_utc(now):
        return ErrorCode.INVITE_EXPIRED, "expired"

    if invite.is_exhausted:
        return ErrorCode.INVITE_EXHAUSTED, "already used"

    return None


def generate_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def run_validate(
    inp: ValidateInviteInput,
    store: KVStorePort,
    fallback: FallbackCodesPort,
    time: TimePort,
) -> ValidateOutput:
    """Read-only check of a code. Never writes to the store."""
    code = normalize_code(inp.code)
    now = time.now_utc()

    virtual = False
    record = store.get(invite_key(code))
    if record is not None:
        invite: InviteCode | None = InviteCode.model_validate(record)
    else:
        invite = fallback.lookup(code, now)
        virtual = invite is not None

    if invite is None:
        return ValidateOutput(
            valid=False, reason="invalid", error_code=ErrorCode.INVITE_INVALID
        )

    problem = check_usable(invite, now)
    if problem:
        error_code, reason = problem
        return ValidateOutput(valid=False, reason=reason, error_code=error_code, invite=invite)

    return ValidateOutput(valid=True, invite=invite, virtual=virtual)


def run_create(
    inp: CreateInviteInput,
    store: KVStorePort,
    policy: PolicyEngine,
    time: TimePort,
    rules: InviteRules,
) -> InviteOutput:
    if not policy.can_create_invites(inp.caller):
        return InviteOutput(
            success=False,
            error="Only administrators can create invite codes",
            error_code=ErrorCode.FORBIDDEN,
        )

    expiry_days = inp.expiry_days if inp.expiry_days is not None else rules.default_expiry_days
    if not 1 <= expiry_days <= rules.max_expiry_days:
        return InviteOutput(
            success=False,
            error=f"expiryDays must be between 1 and {rules.max_expiry_days}",
            error_code=ErrorCode.VALIDATION,
        )

    code = normalize_code(inp.code) if inp.code else generate_code(rules.generated_code_length)
    if not CODE_PATTERN.match(code):
        return InviteOutput(
            success=False,
            error="Code must be 3-64 characters of A-Z, 0-9, '-' or '_'",
            error_code=ErrorCode.VALIDATION,
        )

    invite = InviteCode(
        code=code,
        kind=inp.kind,
        role=inp.role,
        expires_at=time.now_utc() + timedelta(days=expiry_days),
        issued_by=inp.caller.subject_id,
        is_active=True,
        used_by=[],
    )

    # Plain write: an existing record under the same code is replaced.
    store.set(invite_key(code), invite.to_record())
    logger.info(
        "Invite %s created by %s (%s, role=%s, %d days)",
        code,
        inp.caller.subject_id,
        inp.kind,
        inp.role,
        expiry_days,
    )
    return InviteOutput(invite=invite, success=True)


def run_redeem(
    inp: RedeemInviteInput,
    store: KVStorePort,
    fallback: FallbackCodesPort,
    time: TimePort,
    max_attempts: int = 5,
) -> RedeemOutput:
    """
    Consume one use of a code for subject_id.

    Re-runs every validation check against the freshly read record on each
    attempt, then appends the subject (and closes single-use codes) in the
    same conditional write. Fallback codes are redeemed without any write.
    """
    code = normalize_code(inp.code)

    def _apply(record: dict[str, Any]) -> dict[str, Any]:
        invite = InviteCode.model_validate(record)
        problem = check_usable(invite, time.now_utc())
        if problem:
            raise _RedemptionRejected(*problem)

        used_by = list(invite.used_by)
        if inp.subject_id not in used_by:
            used_by.append(inp.subject_id)
        is_active = False if invite.kind == "single" else invite.is_active
        return invite.model_copy(update={"used_by": used_by, "is_active": is_active}).to_record()

    try:
        written = atomic_update(store, invite_key(code), _apply, max_attempts=max_attempts)
    except RecordNotFoundError:
        return _redeem_fallback(code, inp.subject_id, fallback, time)
    except _RedemptionRejected as rejected:
        logger.warning("Redemption of %s by %s rejected: %s", code, inp.subject_id, rejected.reason)
        return RedeemOutput(
            success=False, error=f"Code {rejected.reason}", error_code=rejected.error_code
        )
    except RetriesExhaustedError:
        logger.warning("Redemption of %s by %s lost every retry", code, inp.subject_id)
        return RedeemOutput(
            success=False,
            error="Code is being redeemed concurrently, try again",
            error_code=ErrorCode.CONFLICT,
        )

    invite = InviteCode.model_validate(written)
    logger.info("Invite %s redeemed by %s", code, inp.subject_id)
    return RedeemOutput(invite=invite, success=True)


def _redeem_fallback(
    code: str,
    subject_id: str,
    fallback: FallbackCodesPort,
    time: TimePort,
) -> RedeemOutput:
    invite = fallback.lookup(code, time.now_utc())
    if invite is None:
        logger.warning("Redemption of unknown code %s by %s", code, subject_id)
        return RedeemOutput(success=False, error="Code invalid", error_code=ErrorCode.INVITE_INVALID)

    invite.used_by.append(subject_id)
    logger.info("Fallback invite %s redeemed by %s (not persisted)", code, subject_id)
    return RedeemOutput(invite=invite, success=True, virtual=True)


def run_rebind(
    inp: RebindInviteInput,
    store: KVStorePort,
    max_attempts: int = 5,
) -> InviteOutput:
    code = normalize_code(inp.code)

    def _apply(record: dict[str, Any]) -> dict[str, Any]:
        invite = InviteCode.model_validate(record)
        used_by = [
            inp.to_subject_id if s == inp.from_subject_id else s for s in invite.used_by
        ]
        return invite.model_copy(update={"used_by": used_by}).to_record()

    return _run_update(code, store, _apply, max_attempts)


def run_release(
    inp: ReleaseInviteInput,
    store: KVStorePort,
    max_attempts: int = 5,
) -> InviteOutput:
    """Remove subject_id from the code's redemptions; reopens a single-use code."""
    code = normalize_code(inp.code)

    def _apply(record: dict[str, Any]) -> dict[str, Any]:
        invite = InviteCode.model_validate(record)
        if inp.subject_id not in invite.used_by:
            return record
        used_by = [s for s in invite.used_by if s != inp.subject_id]
        is_active = True if invite.kind == "single" and not used_by else invite.is_active
        return invite.model_copy(update={"used_by": used_by, "is_active": is_active}).to_record()

    output = _run_update(code, store, _apply, max_attempts)
    if output.success:
        logger.warning("Invite %s released for %s", code, inp.subject_id)
    return output


def _run_update(
    code: str,
    store: KVStorePort,
    apply: Callable[[dict[str, Any]], dict[str, Any]],
    max_attempts: int,
) -> InviteOutput:
    try:
        written = atomic_update(store, invite_key(code), apply, max_attempts=max_attempts)
    except RecordNotFoundError:
        # Fallback codes are never stored, so there is nothing to update.
        return InviteOutput(success=True)
    except RetriesExhaustedError:
        return InviteOutput(
            success=False,
            error="Code is being updated concurrently, try again",
            error_code=ErrorCode.CONFLICT,
        )
    return InviteOutput(invite=InviteCode.model_validate(written), success=True)


def run(
    inp: ValidateInviteInput
    | CreateInviteInput
    | RedeemInviteInput
    | RebindInviteInput
    | ReleaseInviteInput,
    *,
    store: KVStorePort,
    fallback: FallbackCodesPort | None = None,  # Only needed for validate/redeem
    policy: PolicyEngine | None = None,  # Only needed for create
    time: TimePort | None = None,
    rules: InviteRules | None = None,
) -> ValidateOutput | InviteOutput | RedeemOutput:
    max_attempts = rules.redeem_max_retries if rules else 5

    if isinstance(inp, ValidateInviteInput):
        assert fallback and time
        return run_validate(inp, store, fallback, time)

    elif isinstance(inp, CreateInviteInput):
        assert policy and time and rules
        return run_create(inp, store, policy, time, rules)

    elif isinstance(inp, RedeemInviteInput):
        assert fallback and time
        return run_redeem(inp, store, fallback, time, max_attempts)

    elif isinstance(inp, RebindInviteInput):
        return run_rebind(inp, store, max_attempts)

    elif isinstance(inp, ReleaseInviteInput):
        return run_release(inp, store, max_attempts)

    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
