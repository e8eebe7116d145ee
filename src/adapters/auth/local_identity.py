"""
Local Identity Provider Adapter.

Stands in for the hosted identity provider: keeps login accounts in the KV
store under ``account:<email>``, hashes passwords with passlib/argon2 and
issues HS256 JWTs whose ``sub`` claim is the subject identifier.

Implements IdentityVerifierPort and AccountProviderPort.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any
from uuid import uuid4

from src.api.auth_utils import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    SECRET_KEY,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from src.core.ports.identity import AccountCreationError
from src.core.ports.kv import KVStorePort, VersionConflictError

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = "account:"


def account_key(email: str) -> str:
    return f"{ACCOUNT_PREFIX}{email.strip().lower()}"


class LocalIdentityProvider:
    def __init__(
        self,
        store: KVStorePort,
        *,
        secret_key: str = SECRET_KEY,
        token_ttl_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
        min_password_length: int = 6,
    ) -> None:
        self._store = store
        self._secret_key = secret_key
        self._token_ttl = timedelta(minutes=token_ttl_minutes)
        self._min_password_length = min_password_length

    # --- IdentityVerifierPort ---

    def verify(self, token: str) -> str | None:
        payload = decode_access_token(token, secret_key=self._secret_key)
        if not payload:
            return None
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            return None
        return subject

    # --- AccountProviderPort ---

    def create_account(self, email: str, password: str, metadata: dict[str, Any]) -> str:
        email = email.strip().lower()
        if "@" not in email:
            raise AccountCreationError("A valid email address is required", reason="invalid_email")
        if len(password) < self._min_password_length:
            raise AccountCreationError(
                f"Password must be at least {self._min_password_length} characters",
                reason="weak_password",
            )

        subject_id = str(uuid4())
        record = {
            "id": subject_id,
            "email": email,
            "passwordHash": get_password_hash(password),
            "metadata": metadata,
        }
        try:
            self._store.compare_and_set(account_key(email), record, expected_version=None)
        except VersionConflictError as e:
            raise AccountCreationError(
                "A user with this email address has already been registered",
                reason="email_exists",
            ) from e

        logger.info("Created account %s for %s", subject_id, email)
        return subject_id

    # --- Token issuance (local provider only) ---

    def authenticate(self, email: str, password: str) -> str | None:
        """Return a bearer token for valid credentials, else None."""
        record = self._store.get(account_key(email))
        if not record or not verify_password(password, record["passwordHash"]):
            return None
        return self.issue_token(record["id"])

    def issue_token(self, subject_id: str) -> str:
        return create_access_token(
            {"sub": subject_id},
            expires_delta=self._token_ttl,
            secret_key=self._secret_key,
        )
