"""
Chain adapter factory and exports
"""
import logging

from .base_adapter import ChainAdapter, ChainDataError
from .evm_adapter import EVMAdapter

logger = logging.getLogger(__name__)


def get_adapter_for_chain(scope, rpc_timeout: float = 10.0) -> ChainAdapter:
    """
    Factory function to get the appropriate adapter for a chain scope.

    Args:
        scope: ChainScope from chains.yaml
        rpc_timeout: Per-call RPC timeout in seconds

    Returns:
        ChainAdapter instance or None
    """
    if not scope.rpc_url:
        logger.error(f"{scope.prefix} No RPC URL configured")
        return None
    return EVMAdapter(scope, rpc_timeout=rpc_timeout)


__all__ = [
    'ChainAdapter',
    'ChainDataError',
    'EVMAdapter',
    'get_adapter_for_chain'
]
