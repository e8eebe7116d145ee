"""
Invite component - Invite code validation, creation and redemption.
"""

from .component import (
    check_usable,
    run,
    run_create,
    run_rebind,
    run_redeem,
    run_release,
    run_validate,
)
from .models import (
    CreateInviteInput,
    InviteOutput,
    RebindInviteInput,
    RedeemInviteInput,
    RedeemOutput,
    ReleaseInviteInput,
    ValidateInviteInput,
    ValidateOutput,
)
from .ports import (
    FallbackCodesPort,
    KVStorePort,
    TimePort,
)

__all__ = [
    # Entry points
    "run",
    "run_validate",
    "run_create",
    "run_redeem",
    "run_rebind",
    "run_release",
    "check_usable",
    # Input models
    "ValidateInviteInput",
    "CreateInviteInput",
    "RedeemInviteInput",
    "RebindInviteInput",
    "ReleaseInviteInput",
    # Output models
    "ValidateOutput",
    "InviteOutput",
    "RedeemOutput",
    # Ports
    "FallbackCodesPort",
    "KVStorePort",
    "TimePort",
]
