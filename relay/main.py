"""Process entry point: ``telegram-relay`` / ``python -m relay.main``."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys

from pydantic import ValidationError
from pydantic_settings import SettingsError

from relay.config import Settings, get_settings
from relay.core.relay import Relay
from relay.infra.logging_config import LoggingConfig, get_logger

logger = get_logger()


async def run_relay(settings: Settings) -> None:
    relay = Relay(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(
                sig, lambda s=sig: asyncio.ensure_future(relay.shutdown(reason=s.name))
            )
    try:
        await relay.run()
    finally:
        await relay.shutdown()
        logger.warning("Exit process")


def main() -> None:
    try:
        settings = get_settings()
    except (ValidationError, SettingsError) as e:
        LoggingConfig("INFO")
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    LoggingConfig(settings.log_level)
    missing = settings.missing_required()
    for env in missing:
        logger.warning("Missing env variable %s", env)
    if missing:
        sys.exit(1)
    if not settings.local_server_url:
        logger.warning("Missing env variable LOCAL_SERVER")

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_relay(settings))


if __name__ == "__main__":
    main()
