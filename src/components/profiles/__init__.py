"""
Profiles component - User profile provisioning, lookup and edits.
"""

from .component import (
    run,
    run_get,
    run_list,
    run_provision,
    run_update,
    to_wire_keys,
)
from .models import (
    GetProfileInput,
    ListProfilesInput,
    ProfileListOutput,
    ProfileOutput,
    ProvisionProfileInput,
    UpdateProfileInput,
)
from .ports import KVStorePort

__all__ = [
    # Entry points
    "run",
    "run_provision",
    "run_get",
    "run_update",
    "run_list",
    "to_wire_keys",
    # Input models
    "ProvisionProfileInput",
    "GetProfileInput",
    "UpdateProfileInput",
    "ListProfilesInput",
    # Output models
    "ProfileOutput",
    "ProfileListOutput",
    # Ports
    "KVStorePort",
]
