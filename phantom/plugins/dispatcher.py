# phantom/plugins/dispatcher.py
# PhantomKeystroke Plugin Dispatcher
# Holds the session's single transport handle and serializes delivery.
# Commands are forwarded as-is; the dispatcher never reads or rewrites them.

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from phantom.exceptions import ConnectFailed, PluginError, SendFailed

if TYPE_CHECKING:
    from phantom.config import PluginConfig
    from phantom.fingerprint import FingerprintedCommand
    from phantom.keystroke import KeystrokeEvent
    from phantom.plugins.base import Ack, Transport, TransportHandle

logger = logging.getLogger(__name__)


class PluginDispatcher:
    """Routes commands to exactly one connected transport"""

    def __init__(self, transport: Transport, config: PluginConfig):
        self.transport = transport
        self.config = config
        self._handle: TransportHandle | None = None

    @property
    def connected(self) -> bool:
        return self._handle is not None

    async def start(self) -> None:
        """
        Connect the transport. Failure is fatal to the session.

        Raises:
            ConnectFailed: Transport could not connect
        """
        if self._handle is not None:
            msg = f"Transport {self.transport.name} already connected"
            raise PluginError(msg)
        try:
            self._handle = await self.transport.connect(self.config)
        except PluginError:
            raise
        except Exception as e:
            msg = f"{self.transport.name} connect failed: {e}"
            raise ConnectFailed(msg) from e
        logger.info("Transport %s connected", self.transport.name)

    async def send(self, command: FingerprintedCommand, events: Sequence[KeystrokeEvent]) -> Ack:
        """
        Deliver one command.

        Raises:
            SendFailed: No session, or the transport failed; the session goes on
        """
        if self._handle is None:
            msg = "No connected transport"
            raise SendFailed(msg)
        try:
            return await self.transport.send(self._handle, command, events)
        except (asyncio.CancelledError, SendFailed):
            raise
        except Exception as e:
            msg = f"{self.transport.name} send failed: {e}"
            raise SendFailed(msg) from e

    async def shutdown(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self.transport.shutdown(handle)
        except Exception as e:
            logger.warning("Transport %s shutdown error: %s", self.transport.name, e)
        else:
            logger.info("Transport %s closed", self.transport.name)
