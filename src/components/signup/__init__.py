"""
Signup component - Invite-gated account registration.
"""

from .component import PROVISIONAL_PREFIX, run, run_signup
from .models import SignupInput, SignupOutput
from .ports import (
    AccountCreationError,
    AccountProviderPort,
    FallbackCodesPort,
    KVStorePort,
    TimePort,
)

__all__ = [
    # Entry points
    "run",
    "run_signup",
    "PROVISIONAL_PREFIX",
    # Models
    "SignupInput",
    "SignupOutput",
    # Ports
    "AccountCreationError",
    "AccountProviderPort",
    "FallbackCodesPort",
    "KVStorePort",
    "TimePort",
]
