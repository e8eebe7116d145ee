from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from src.adapters.auth.local_identity import LocalIdentityProvider
from src.api.deps import get_caller, get_identity_provider
from src.api.schemas import MeResponse, Token
from src.domain.policy import Caller

router = APIRouter()


@router.post("/token", response_model=Token)
def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    identity: LocalIdentityProvider = Depends(get_identity_provider),
) -> Token:
    """Exchange email + password for a bearer token (local identity provider)."""
    token = identity.authenticate(form_data.username, form_data.password)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Incorrect email or password"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Token(access_token=token, token_type="bearer")


@router.get("/me", response_model=MeResponse)
def read_me(caller: Caller = Depends(get_caller)) -> MeResponse:
    return MeResponse(
        subject_id=caller.subject_id,
        profile=caller.profile.to_record() if caller.profile else None,
    )
