from src.components.invite.ports import FallbackCodesPort, TimePort
from src.core.ports.identity import AccountCreationError, AccountProviderPort
from src.core.ports.kv import KVStorePort

__all__ = [
    "AccountCreationError",
    "AccountProviderPort",
    "FallbackCodesPort",
    "KVStorePort",
    "TimePort",
]
