"""Multi-endpoint RPC access."""
from .pool import Endpoint, RpcPool, parallel_fetch

__all__ = ["Endpoint", "RpcPool", "parallel_fetch"]
