# Services package
from eventpoll.services.adapter_service import (
    build_adapter,
    get_adapters,
    init_adapters,
    shutdown_adapters,
)

__all__ = [
    "build_adapter",
    "get_adapters",
    "init_adapters",
    "shutdown_adapters",
]
