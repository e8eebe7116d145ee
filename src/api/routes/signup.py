from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.adapters.auth.local_identity import LocalIdentityProvider
from src.adapters.clock import SystemClock
from src.adapters.demo_codes import DemoCodeAllowList
from src.api.deps import (
    client_address,
    get_clock,
    get_demo_codes,
    get_identity_provider,
    get_kv_store,
    get_rate_limiter,
    get_rules,
)
from src.api.errors import raise_for
from src.api.schemas import SignupRequest
from src.app_shell.rate_limit import RateLimiter
from src.components.signup import SignupInput, run_signup
from src.core.ports.kv import KVStorePort
from src.rules.models import Rules

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def signup(
    req: SignupRequest,
    request: Request,
    store: KVStorePort = Depends(get_kv_store),
    accounts: LocalIdentityProvider = Depends(get_identity_provider),
    demo_codes: DemoCodeAllowList = Depends(get_demo_codes),
    clock: SystemClock = Depends(get_clock),
    rules: Rules = Depends(get_rules),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> dict[str, Any]:
    """Redeem an invite, create the login account and provision the profile (no auth)."""
    if not limiter.check_signup(client_address(request)):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"code": "rate-limited", "message": "Too many signup attempts, try later"},
        )

    inp = SignupInput(
        email=req.email,
        password=req.password,
        invite_code=req.invite_code,
        name=req.name,
        language=req.language,
    )
    result = run_signup(inp, store, accounts, demo_codes, clock, rules.signup, rules.invites)

    if not result.success or result.profile is None:
        raise_for(result.error_code, result.error)

    return {"user": result.profile.to_record()}
