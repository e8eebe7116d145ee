"""
Signup component - invite-gated registration.

Composes redeem -> account creation -> provision. The invite is reserved under
a provisional subject first, so a failed redemption stops the flow before any
account exists. Once the account exists the reservation is rebound to the real
subject; if account creation fails the reservation can be released again.
"""

import logging
from uuid import uuid4

from src.components.invite import (
    RebindInviteInput,
    RedeemInviteInput,
    ReleaseInviteInput,
    run_rebind,
    run_redeem,
    run_release,
)
from src.components.profiles import ProvisionProfileInput, run_provision
from src.domain.entities import normalize_code
from src.domain.errors import ErrorCode
from src.rules.models import InviteRules, SignupRules

from .models import SignupInput, SignupOutput
from .ports import (
    AccountCreationError,
    AccountProviderPort,
    FallbackCodesPort,
    KVStorePort,
    TimePort,
)

logger = logging.getLogger(__name__)

PROVISIONAL_PREFIX = "pending-"
REBIND_RETRY_FACTOR = 4


def run_signup(
    inp: SignupInput,
    store: KVStorePort,
    accounts: AccountProviderPort,
    fallback: FallbackCodesPort,
    time: TimePort,
    rules: SignupRules,
    invite_rules: InviteRules,
) -> SignupOutput:
    code = normalize_code(inp.invite_code or "")
    if not code:
        return SignupOutput(success=False, error="Invite code is required", error_code=ErrorCode.VALIDATION)
    if not inp.email or not inp.password:
        return SignupOutput(
            success=False, error="Email and password are required", error_code=ErrorCode.VALIDATION
        )

    max_attempts = invite_rules.redeem_max_retries
    provisional = f"{PROVISIONAL_PREFIX}{uuid4()}"

    # 1. Reserve the invite
    redeemed = run_redeem(
        RedeemInviteInput(code=code, subject_id=provisional), store, fallback, time, max_attempts
    )
    if not redeemed.success or redeemed.invite is None:
        return SignupOutput(success=False, error=redeemed.error, error_code=redeemed.error_code)
    invite = redeemed.invite

    # 2. Create the login account
    try:
        subject_id = accounts.create_account(
            inp.email, inp.password, {"name": inp.name, "role": invite.role}
        )
    except AccountCreationError as e:
        if rules.release_invite_on_account_failure:
            run_release(ReleaseInviteInput(code=code, subject_id=provisional), store, max_attempts)
        else:
            logger.warning("Invite %s stays consumed after failed account creation", code)
        logger.warning("Account creation for %s failed (%s): %s", inp.email, e.reason, e)
        return SignupOutput(success=False, error=str(e), error_code=ErrorCode.ACCOUNT_FAILED)

    # 3. Bind the reservation to the real subject
    rebind_error: ErrorCode | None = None
    if not redeemed.virtual:
        rebind = RebindInviteInput(code=code, from_subject_id=provisional, to_subject_id=subject_id)
        rebound = run_rebind(rebind, store, max_attempts)
        if rebound.error_code == ErrorCode.CONFLICT:
            rebound = run_rebind(rebind, store, max_attempts * REBIND_RETRY_FACTOR)

        if rebound.success and rebound.invite is not None:
            invite = rebound.invite
        else:
            rebind_error = rebound.error_code or ErrorCode.CONFLICT
            logger.error(
                "Invite %s still lists %s instead of %s (%s); rebind it by hand",
                code,
                provisional,
                subject_id,
                rebind_error.value,
            )
    else:
        invite = invite.model_copy(update={"used_by": [subject_id]})

    # 4. Provision the profile
    provisioned = run_provision(
        ProvisionProfileInput(
            subject_id=subject_id,
            role=invite.role,
            invited_by_code=code,
            seed={
                "name": inp.name,
                "email": inp.email.strip().lower(),
                "language": inp.language or rules.default_language,
            },
        ),
        store,
    )
    if not provisioned.success:
        return SignupOutput(success=False, error=provisioned.error, error_code=provisioned.error_code)

    logger.info("Signup complete for %s via %s", subject_id, code)
    return SignupOutput(
        profile=provisioned.profile, invite=invite, success=True, rebind_error_code=rebind_error
    )


def run(
    inp: SignupInput,
    *,
    store: KVStorePort,
    accounts: AccountProviderPort,
    fallback: FallbackCodesPort,
    time: TimePort,
    rules: SignupRules,
    invite_rules: InviteRules,
) -> SignupOutput:
    if isinstance(inp, SignupInput):
        return run_signup(inp, store, accounts, fallback, time, rules, invite_rules)
    raise ValueError(f"Unknown input type: {type(inp)}")
