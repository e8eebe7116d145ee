import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from src.adapters.auth.local_identity import LocalIdentityProvider
from src.adapters.clock import SystemClock
from src.adapters.demo_codes import DemoCodeAllowList
from src.adapters.memory_kv import InMemoryKVStore
from src.adapters.sqlite.kv_store import SQLiteKVStore
from src.api.auth_utils import ACCESS_TOKEN_EXPIRE_MINUTES, SECRET_KEY
from src.app_shell.rate_limit import RateLimiter
from src.core.ports.kv import KVStorePort
from src.domain.entities import UserProfile, user_key
from src.domain.policy import Caller, PolicyEngine
from src.rules.loader import load_rules
from src.rules.models import Rules

logger = logging.getLogger(__name__)


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("INBOX_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "inbox.db")
        self.kv_backend = os.environ.get("INBOX_KV_BACKEND", "sqlite").lower()
        self.secret_key = os.environ.get("INBOX_SECRET_KEY", SECRET_KEY)
        self.token_ttl_minutes = int(
            os.environ.get("INBOX_TOKEN_TTL_MINUTES", ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        self.rules_path = Path(os.environ.get("INBOX_RULES_PATH", self.base_dir / "rules.yaml"))


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


# --- KV Store ---
_kv_store_instance: KVStorePort | None = None


def build_kv_store(settings: Settings) -> KVStorePort:
    if settings.kv_backend == "memory":
        logger.warning("Using in-memory KV store; data is lost on restart")
        return InMemoryKVStore()
    if settings.kv_backend != "sqlite":
        raise ValueError(f"Unknown INBOX_KV_BACKEND '{settings.kv_backend}' (use sqlite or memory)")
    return SQLiteKVStore(settings.db_path)


def get_kv_store(settings: Settings = Depends(get_settings)) -> KVStorePort:
    """Get KV store singleton."""
    global _kv_store_instance
    if _kv_store_instance is None:
        _kv_store_instance = build_kv_store(settings)
    return _kv_store_instance


# --- Services ---
def get_policy(rules: Rules = Depends(get_rules)) -> PolicyEngine:
    return PolicyEngine(rules.rbac)


def get_demo_codes(rules: Rules = Depends(get_rules)) -> DemoCodeAllowList:
    return DemoCodeAllowList.from_rules(rules.invites.demo_codes)


def get_identity_provider(
    store: KVStorePort = Depends(get_kv_store),
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
) -> LocalIdentityProvider:
    return LocalIdentityProvider(
        store,
        secret_key=settings.secret_key,
        token_ttl_minutes=settings.token_ttl_minutes,
        min_password_length=rules.signup.min_password_length,
    )


# Time adapter for deterministic time operations
_clock_instance: SystemClock | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


_rate_limiter_instance: RateLimiter | None = None


def get_rate_limiter(rules: Rules = Depends(get_rules)) -> RateLimiter:
    """Get rate limiter singleton (history is per process)."""
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        _rate_limiter_instance = RateLimiter(rules.rate_limits)
    return _rate_limiter_instance


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# --- Auth ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "unauthorized", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_subject(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    identity: LocalIdentityProvider = Depends(get_identity_provider),
) -> str:
    """Resolve the bearer credential to a subject id; 401 before any handler runs."""
    if not token:
        raise _unauthorized("Not authenticated")

    subject_id = identity.verify(token)
    if subject_id is None:
        logger.warning("Rejected bearer credential")
        raise _unauthorized("Invalid token")

    return subject_id


async def get_caller(
    subject_id: str = Depends(get_current_subject),
    store: KVStorePort = Depends(get_kv_store),
) -> Caller:
    """Verified subject plus its stored profile; the role is read from the profile only."""
    record = store.get(user_key(subject_id))
    profile = UserProfile.model_validate(record) if record else None
    return Caller(subject_id=subject_id, profile=profile)
