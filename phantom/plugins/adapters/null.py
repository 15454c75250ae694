# phantom/plugins/adapters/null.py
# PhantomKeystroke Null Transport - types the command into the local terminal

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING, TextIO

from phantom.keystroke import KeyKind, KeystrokeEvent, replay
from phantom.plugins.base import Ack, Transport, TransportHandle

if TYPE_CHECKING:
    from phantom.config import PluginConfig
    from phantom.fingerprint import FingerprintedCommand

logger = logging.getLogger(__name__)


class NullTransport(Transport):
    """Replays keystrokes to a local stream with their real delays"""

    name = "null"

    def __init__(self, output: TextIO | None = None, realtime: bool = True, speed: float = 1.0):
        self.output = output
        self.realtime = realtime
        self.speed = speed

    async def connect(self, config: PluginConfig) -> TransportHandle:
        stream = self.output or sys.stdout
        logger.debug("Null transport bound to %s", getattr(stream, "name", stream))
        return TransportHandle(transport=self.name, config=config, session=stream)

    async def send(
        self,
        handle: TransportHandle,
        command: FingerprintedCommand,
        events: Sequence[KeystrokeEvent],
    ) -> Ack:
        stream: TextIO = handle.session

        def write(event: KeystrokeEvent) -> None:
            if event.kind is KeyKind.BACKSPACE:
                stream.write("\b \b")
            else:
                stream.write(event.char)
            stream.flush()

        await replay(events, write, speed=self.speed, realtime=self.realtime)
        stream.write("\n")
        stream.flush()
        return Ack(delivered=True, detail="replayed locally")
