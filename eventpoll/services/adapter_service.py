"""Builds, starts and stops the configured vendor adapters.

Usage:
    adapters = await init_adapters(settings)   # at startup
    get_adapters()                             # from routes
    await shutdown_adapters()                  # at shutdown
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple

from eventpoll.core.config import Settings
from eventpoll.core.errors import ConfigurationError, DeliveryError
from eventpoll.core.logging import get_logger
from eventpoll.delivery.sink import EventSink, JsonlFileSink
from eventpoll.ingestion.adapter import PollingAdapter
from eventpoll.vendors import abnormal_security, darktrace

log = get_logger("adapter_service")

# name -> (settings -> validated config, (config, sink, **kwargs) -> adapter)
ADAPTER_BUILDERS: Dict[str, Tuple[Callable[[Any], Any], Callable[..., PollingAdapter]]] = {
    darktrace.NAME: (darktrace.darktrace_config_from_settings, darktrace.new_darktrace_adapter),
    abnormal_security.NAME: (
        abnormal_security.abnormal_security_config_from_settings,
        abnormal_security.new_abnormal_security_adapter,
    ),
}

_adapters: List[PollingAdapter] = []


def build_sink(settings: Settings, name: str) -> EventSink:
    return JsonlFileSink(settings.SINK_PATH.format(adapter=name), buffer_size=settings.SINK_BUFFER_SIZE)


def build_adapter(name: str, settings: Settings) -> PollingAdapter:
    """Validate config for ``name`` and construct its adapter (not started)."""
    try:
        config_from_settings, factory = ADAPTER_BUILDERS[name]
    except KeyError:
        raise ConfigurationError(f"unknown adapter: {name}. Must be one of: {', '.join(ADAPTER_BUILDERS)}") from None
    config = config_from_settings(settings)
    return factory(config, build_sink(settings, name), interval=float(settings.POLL_INTERVAL_SECONDS))


async def init_adapters(settings: Settings, names: List[str] | None = None) -> List[PollingAdapter]:
    """Start every requested adapter. Any config error aborts startup."""
    names = names if names is not None else settings.enabled_adapters
    if not names:
        log.warning("No adapters enabled (set ENABLED_ADAPTERS)")
    built = [build_adapter(name, settings) for name in names]
    for adapter in built:
        log.info(f"Starting {adapter.name} adapter ({len(adapter.scheduler.sources)} sources)")
        _adapters.append(adapter.start())
    return list(_adapters)


def get_adapters() -> List[PollingAdapter]:
    return list(_adapters)


async def shutdown_adapters() -> None:
    while _adapters:
        adapter = _adapters.pop()
        try:
            await adapter.close()
        except DeliveryError as exc:
            log.error(f"{adapter.name} shutdown error: {exc}")
