"""
Adapter registry for connection-management backends.
"""
from que_adapters.adapters.base import _ADAPTER_REGISTRY
from que_adapters.adapters.base import Adapter as Adapter
from que_adapters.adapters.base import ThreadBoundAdapter as ThreadBoundAdapter
from que_adapters.adapters.base import get_adapter_class as get_adapter_class
from que_adapters.adapters.base import register_adapter as register_adapter
from que_adapters.adapters.alchemy import SQLAlchemyAdapter as SQLAlchemyAdapter
from que_adapters.adapters.pg import PGAdapter as PGAdapter
from que_adapters.adapters.pool import PoolAdapter as PoolAdapter


def get_available_adapters() -> list[str]:
    """Return list of registered adapter names."""
    return list(_ADAPTER_REGISTRY.keys())


def is_supported_adapter(name: str) -> bool:
    """Check if an adapter name is registered."""
    return name in _ADAPTER_REGISTRY
