# invite-inbox - Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from src.core.ports.identity import (
    AccountCreationError,
    AccountProviderPort,
    IdentityVerifierPort,
)
from src.core.ports.kv import (
    KVStoreError,
    KVStorePort,
    VersionConflictError,
    VersionedValue,
)

__all__ = [
    # Identity
    "AccountCreationError",
    "AccountProviderPort",
    "IdentityVerifierPort",
    # KV store
    "KVStoreError",
    "KVStorePort",
    "VersionConflictError",
    "VersionedValue",
]
