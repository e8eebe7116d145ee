from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from src.adapters.clock import SystemClock
from src.adapters.demo_codes import DemoCodeAllowList
from src.api.deps import (
    client_address,
    get_caller,
    get_clock,
    get_demo_codes,
    get_kv_store,
    get_policy,
    get_rate_limiter,
    get_rules,
)
from src.api.errors import raise_for, status_for
from src.api.schemas import InviteCreateRequest
from src.app_shell.rate_limit import RateLimiter
from src.components.invite import CreateInviteInput, ValidateInviteInput, run_create, run_validate
from src.core.ports.kv import KVStorePort
from src.domain.policy import Caller, PolicyEngine
from src.rules.models import Rules

router = APIRouter()


@router.get("/{code}", response_model=None)
def validate_invite_code(
    code: str,
    request: Request,
    store: KVStorePort = Depends(get_kv_store),
    demo_codes: DemoCodeAllowList = Depends(get_demo_codes),
    clock: SystemClock = Depends(get_clock),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> JSONResponse:
    """Check a code without consuming it (no auth)."""
    if not limiter.check_invite_lookup(client_address(request)):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"code": "rate-limited", "message": "Too many lookups, slow down"},
        )

    result = run_validate(ValidateInviteInput(code=code), store, demo_codes, clock)

    if not result.valid:
        body: dict[str, Any] = {
            "valid": False,
            "reason": result.reason,
            "code": result.error_code.value if result.error_code else None,
        }
        return JSONResponse(content=body, status_code=status_for(result.error_code))

    assert result.invite is not None
    return JSONResponse(content={"valid": True, "inviteCode": result.invite.to_record()})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_invite_code(
    req: InviteCreateRequest,
    caller: Caller = Depends(get_caller),
    store: KVStorePort = Depends(get_kv_store),
    policy: PolicyEngine = Depends(get_policy),
    clock: SystemClock = Depends(get_clock),
    rules: Rules = Depends(get_rules),
) -> dict[str, Any]:
    """Create (or replace) an invite code (admin only)."""
    inp = CreateInviteInput(
        caller=caller,
        code=req.code,
        kind=req.kind,
        role=req.role,
        expiry_days=req.expiry_days,
    )
    result = run_create(inp, store, policy, clock, rules.invites)

    if not result.success or result.invite is None:
        raise_for(result.error_code, result.error)

    return result.invite.to_record()
