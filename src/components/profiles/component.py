"""
Profiles component - user profile provisioning and edits.

Provisioning overwrites whatever is stored for the subject. Later edits are a
shallow merge applied as one conditional write of the full record.
"""

import logging
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from src.core.atomic import RecordNotFoundError, RetriesExhaustedError, atomic_update
from src.domain.entities import USER_PREFIX, UserProfile, user_key
from src.domain.errors import ErrorCode
from src.domain.policy import PolicyEngine

from .models import (
    GetProfileInput,
    ListProfilesInput,
    ProfileListOutput,
    ProfileOutput,
    ProvisionProfileInput,
    UpdateProfileInput,
)
from .ports import KVStorePort

logger = logging.getLogger(__name__)

# Wire name for every declared field, e.g. "onboarding_complete" -> "onboardingComplete"
_WIRE_NAMES = {name: to_camel(name) for name in UserProfile.model_fields}
_IMMUTABLE = ("id", "invitedByCode")


class _UpdateRejected(Exception):
    def __init__(self, error_code: ErrorCode, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(message)


def to_wire_keys(fields: dict[str, Any]) -> dict[str, Any]:
    """Rename snake_case field names to their stored camelCase keys."""
    return {_WIRE_NAMES.get(key, key): value for key, value in fields.items()}


def run_provision(inp: ProvisionProfileInput, store: KVStorePort) -> ProfileOutput:
    """
    Build and persist the profile for a freshly redeemed invite.

    Not separately authorized: the caller has just redeemed the invite.
    id, role and invitedByCode always come from the redemption, never the seed.
    """
    record = to_wire_keys(inp.seed)
    record.update({"id": inp.subject_id, "role": inp.role, "invitedByCode": inp.invited_by_code})

    try:
        profile = UserProfile.model_validate(record)
    except ValidationError as e:
        return ProfileOutput(success=False, error=str(e), error_code=ErrorCode.VALIDATION)

    store.set(user_key(inp.subject_id), profile.to_record())
    logger.info(
        "Provisioned profile %s (role=%s, invite=%s)", inp.subject_id, inp.role, inp.invited_by_code
    )
    return ProfileOutput(profile=profile, success=True)


def run_get(inp: GetProfileInput, store: KVStorePort, policy: PolicyEngine) -> ProfileOutput:
    if not policy.can_access_profile(inp.caller, inp.subject_id):
        return ProfileOutput(
            success=False, error="Not allowed to view this profile", error_code=ErrorCode.FORBIDDEN
        )

    record = store.get(user_key(inp.subject_id))
    if record is None:
        return ProfileOutput(success=False, error="User not found", error_code=ErrorCode.NOT_FOUND)

    return ProfileOutput(profile=UserProfile.model_validate(record), success=True)


def run_update(
    inp: UpdateProfileInput,
    store: KVStorePort,
    policy: PolicyEngine,
    max_attempts: int = 5,
) -> ProfileOutput:
    if not policy.can_access_profile(inp.caller, inp.subject_id):
        return ProfileOutput(
            success=False, error="Not allowed to edit this profile", error_code=ErrorCode.FORBIDDEN
        )

    changes = to_wire_keys(inp.fields)
    may_set_role = policy.can_change_role(inp.caller)

    def _apply(record: dict[str, Any]) -> dict[str, Any]:
        for key in _IMMUTABLE:
            if key in changes and changes[key] != record.get(key):
                raise _UpdateRejected(ErrorCode.VALIDATION, f"'{key}' cannot be changed")

        if "role" in changes and changes["role"] != record.get("role") and not may_set_role:
            raise _UpdateRejected(ErrorCode.FORBIDDEN, "Only administrators can change roles")

        return UserProfile.model_validate({**record, **changes}).to_record()

    try:
        written = atomic_update(store, user_key(inp.subject_id), _apply, max_attempts=max_attempts)
    except RecordNotFoundError:
        return ProfileOutput(success=False, error="User not found", error_code=ErrorCode.NOT_FOUND)
    except _UpdateRejected as rejected:
        return ProfileOutput(success=False, error=rejected.message, error_code=rejected.error_code)
    except ValidationError as e:
        return ProfileOutput(success=False, error=str(e), error_code=ErrorCode.VALIDATION)
    except RetriesExhaustedError:
        return ProfileOutput(
            success=False,
            error="Profile is being updated concurrently, try again",
            error_code=ErrorCode.CONFLICT,
        )

    if "role" in changes:
        logger.info("Role of %s set to %s by %s", inp.subject_id, changes["role"], inp.caller.subject_id)
    return ProfileOutput(profile=UserProfile.model_validate(written), success=True)


def run_list(inp: ListProfilesInput, store: KVStorePort, policy: PolicyEngine) -> ProfileListOutput:
    if not policy.can_list_users(inp.caller):
        return ProfileListOutput(
            success=False, error="Only administrators can list users", error_code=ErrorCode.FORBIDDEN
        )

    profiles = [UserProfile.model_validate(r) for r in store.get_by_prefix(USER_PREFIX)]
    return ProfileListOutput(profiles=profiles, success=True)


def run(
    inp: ProvisionProfileInput | GetProfileInput | UpdateProfileInput | ListProfilesInput,
    *,
    store: KVStorePort,
    policy: PolicyEngine | None = None,  # Not needed for provision
) -> ProfileOutput | ProfileListOutput:
    if isinstance(inp, ProvisionProfileInput):
        return run_provision(inp, store)

    elif isinstance(inp, GetProfileInput):
        assert policy
        return run_get(inp, store, policy)

    elif isinstance(inp, UpdateProfileInput):
        assert policy
        return run_update(inp, store, policy)

    elif isinstance(inp, ListProfilesInput):
        assert policy
        return run_list(inp, store, policy)

    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
