"""Poll entrypoint - Standalone runner for the vendor adapters.

Usage:
    python -m eventpoll.poll_entrypoint                       # Run ENABLED_ADAPTERS
    python -m eventpoll.poll_entrypoint darktrace             # Run single adapter
    python -m eventpoll.poll_entrypoint darktrace abnormal_security
"""

import asyncio
import signal
import sys
from typing import List

from eventpoll.core.config import settings
from eventpoll.core.errors import ConfigurationError
from eventpoll.core.logging import get_logger
from eventpoll.services.adapter_service import ADAPTER_BUILDERS, init_adapters, shutdown_adapters

logger = get_logger("poll_entrypoint")


async def run_adapters(names: List[str]) -> int:
    """Run until a signal arrives or every adapter has stopped on its own."""
    adapters = await init_adapters(settings, names)
    if not adapters:
        return 1

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows
            pass

    stopped_all = asyncio.ensure_future(asyncio.gather(*(a.wait_stopped() for a in adapters)))
    signalled = asyncio.ensure_future(stop.wait())
    await asyncio.wait({stopped_all, signalled}, return_when=asyncio.FIRST_COMPLETED)
    signalled.cancel()

    failed = [a.name for a in adapters if a.stop_reason is not None]
    await shutdown_adapters()
    await asyncio.gather(stopped_all, return_exceptions=True)

    if failed:
        logger.error(f"Adapters stopped on failure: {', '.join(failed)}")
        return 1
    return 0


def main() -> int:
    logger.info("Event poller starting...")

    names = [arg.lower() for arg in sys.argv[1:]] or settings.enabled_adapters
    unknown = [name for name in names if name not in ADAPTER_BUILDERS]
    if unknown:
        logger.error(f"Invalid adapter: {', '.join(unknown)}. Must be one of: {', '.join(ADAPTER_BUILDERS)}")
        return 1

    try:
        code = asyncio.run(run_adapters(names))
    except ConfigurationError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 1

    logger.info(f"Event poller exited with code {code}")
    return code


if __name__ == "__main__":
    sys.exit(main())
