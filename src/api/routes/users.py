from typing import Any

from fastapi import APIRouter, Body, Depends

from src.api.deps import get_caller, get_kv_store, get_policy
from src.api.errors import raise_for
from src.components.profiles import (
    GetProfileInput,
    ListProfilesInput,
    UpdateProfileInput,
    run_get,
    run_list,
    run_update,
)
from src.core.ports.kv import KVStorePort
from src.domain.policy import Caller, PolicyEngine

router = APIRouter()


@router.get("")
def list_users(
    caller: Caller = Depends(get_caller),
    store: KVStorePort = Depends(get_kv_store),
    policy: PolicyEngine = Depends(get_policy),
) -> list[dict[str, Any]]:
    """List all profiles (admin only)."""
    result = run_list(ListProfilesInput(caller=caller), store, policy)

    if not result.success:
        raise_for(result.error_code, result.error)

    return [p.to_record() for p in result.profiles]


@router.get("/{user_id}")
def get_user(
    user_id: str,
    caller: Caller = Depends(get_caller),
    store: KVStorePort = Depends(get_kv_store),
    policy: PolicyEngine = Depends(get_policy),
) -> dict[str, Any]:
    """Read a profile (self or admin)."""
    result = run_get(GetProfileInput(caller=caller, subject_id=user_id), store, policy)

    if not result.success or result.profile is None:
        raise_for(result.error_code, result.error)

    return result.profile.to_record()


@router.put("/{user_id}")
def update_user(
    user_id: str,
    fields: dict[str, Any] = Body(...),
    caller: Caller = Depends(get_caller),
    store: KVStorePort = Depends(get_kv_store),
    policy: PolicyEngine = Depends(get_policy),
) -> dict[str, Any]:
    """Shallow-merge a partial profile (self or admin)."""
    result = run_update(
        UpdateProfileInput(caller=caller, subject_id=user_id, fields=fields), store, policy
    )

    if not result.success or result.profile is None:
        raise_for(result.error_code, result.error)

    return result.profile.to_record()
