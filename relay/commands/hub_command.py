"""
Command to handle ``command`` envelopes sent by the hub.

The hub's command vocabulary belongs to the hub; the relay only receives the
raw envelope and records it. Subclass and override ``handle`` to act on it.
"""

from __future__ import annotations

import logging
from typing import Any

from relay.schemas.envelope import CommandEnvelope


class HubCommand:
    """Receives raw command envelopes from the relay connection."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)
        self.received = 0

    async def execute(self, envelope: CommandEnvelope) -> Any:
        """
        Execute the command carried by the envelope.

        Args:
            envelope: Raw command envelope; hub fields are in ``envelope.payload``.

        Returns:
            Whatever ``handle`` returns (None by default).
        """
        self.received += 1
        self.logger.info(
            "Hub command from %s/%s: %s",
            envelope.bot,
            envelope.platform,
            envelope.payload,
        )
        return await self.handle(envelope)

    async def handle(self, envelope: CommandEnvelope) -> Any:
        return None
