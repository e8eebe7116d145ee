from pydantic import BaseModel, Field

from src.domain.entities import RoleType


class ServiceRules(BaseModel):
    name: str
    version: str


class DemoCodeRules(BaseModel):
    enabled: bool = False
    codes: list[str] = Field(default_factory=list)
    validity_days: int = 30
    role: RoleType = "user"
    issued_by: str = "system"


class InviteRules(BaseModel):
    default_expiry_days: int = 7
    max_expiry_days: int = 365
    generated_code_length: int = 10
    redeem_max_retries: int = 5
    demo_codes: DemoCodeRules = Field(default_factory=DemoCodeRules)


class SignupRules(BaseModel):
    release_invite_on_account_failure: bool = True
    default_language: str = "en"
    min_password_length: int = 6


class MessageRules(BaseModel):
    max_content_length: int = 4000
    max_reply_length: int = 4000


class RbacRules(BaseModel):
    roles: dict[str, list[str]]


class RateLimitWindow(BaseModel):
    window_seconds: int
    max_attempts: int | None = None
    max_requests: int | None = None


class RateLimitRules(BaseModel):
    invite_lookup: RateLimitWindow
    signup: RateLimitWindow


class CorsRules(BaseModel):
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])


class Rules(BaseModel):
    service: ServiceRules
    invites: InviteRules
    signup: SignupRules
    messages: MessageRules
    rbac: RbacRules
    rate_limits: RateLimitRules
    cors: CorsRules = Field(default_factory=CorsRules)
