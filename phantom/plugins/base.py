# phantom/plugins/base.py
# PhantomKeystroke Transport Base Classes
# The capability set every transport provides: connect, send, shutdown

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from phantom.config import PluginConfig
    from phantom.fingerprint import FingerprintedCommand
    from phantom.keystroke import KeystrokeEvent


class TransportKind(Enum):
    """Transport variants"""
    NULL = "null"
    COBALTSTRIKE = "cobaltstrike"
    SLIVER = "sliver"
    MYTHIC = "mythic"
    CUSTOM = "custom"


@dataclass
class TransportHandle:
    """Live session returned by connect(); owned by the dispatcher"""
    transport: str
    config: PluginConfig
    session: Any = None
    state: dict[str, Any] = field(default_factory=dict)
    connected: bool = True


@dataclass
class Ack:
    """Delivery acknowledgement"""
    delivered: bool = True
    attempts: int = 1
    detail: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "delivered": self.delivered,
            "attempts": self.attempts,
            "detail": self.detail,
            "data": self.data,
        }


def build_payload(
    command: FingerprintedCommand, events: Sequence[KeystrokeEvent]
) -> dict[str, Any]:
    """Wire payload: rewritten text and keystrokes only, no persona metadata."""
    return {
        "text": command.rewritten_text,
        "keystrokes": [event.to_wire() for event in events],
    }


class Transport(ABC):
    """
    Base class of every transport.
    Implementations must not alter the command or keystrokes they deliver.
    """

    name: str = "base"

    @abstractmethod
    async def connect(self, config: PluginConfig) -> TransportHandle:
        """
        Open a session with the backend.

        Raises:
            ConnectFailed: Backend unreachable or refused the session
        """

    @abstractmethod
    async def send(
        self,
        handle: TransportHandle,
        command: FingerprintedCommand,
        events: Sequence[KeystrokeEvent],
    ) -> Ack:
        """
        Deliver one command.

        Raises:
            SendFailed: Delivery failed after the transport's own retries
        """

    async def shutdown(self, handle: TransportHandle) -> None:
        """Release the session"""
        handle.connected = False
