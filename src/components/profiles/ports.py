from src.core.ports.kv import KVStorePort

__all__ = ["KVStorePort"]
