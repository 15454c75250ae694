# phantom/plugins/registry.py
# PhantomKeystroke Transport Registry - name -> transport factory

import logging
from typing import TextIO

from phantom.config import PluginConfig
from phantom.exceptions import ConfigError
from phantom.plugins.adapters.cobaltstrike import CobaltStrikeTransport
from phantom.plugins.adapters.mythic import MythicTransport
from phantom.plugins.adapters.null import NullTransport
from phantom.plugins.adapters.sliver import SliverTransport
from phantom.plugins.base import Transport, TransportKind
from phantom.plugins.loader import load_custom_transport

logger = logging.getLogger(__name__)


class TransportRegistry:
    """
    Built-in transports by name.
    Custom transports are loaded from parameters.path at creation time.
    """

    def __init__(self):
        self._transports: dict[str, type[Transport]] = {
            TransportKind.COBALTSTRIKE.value: CobaltStrikeTransport,
            TransportKind.SLIVER.value: SliverTransport,
            TransportKind.MYTHIC.value: MythicTransport,
        }

    def register(self, name: str, transport_cls: type[Transport]):
        """Manual transport registration"""
        self._transports[name.lower()] = transport_cls

    def names(self) -> list[str]:
        return [TransportKind.NULL.value, *self._transports, TransportKind.CUSTOM.value]

    def create(
        self,
        config: PluginConfig,
        output: TextIO | None = None,
        realtime: bool = True,
        speed: float = 1.0,
    ) -> Transport:
        """
        Instantiate the transport named by config.

        Raises:
            ConfigError: Unknown transport name
            ConnectFailed / AbiMismatch: Custom module could not be loaded
        """
        name = config.name.lower()
        if name == TransportKind.NULL.value:
            return NullTransport(output=output, realtime=realtime, speed=speed)
        if name == TransportKind.CUSTOM.value:
            path = config.parameters.get("path")
            if not path:
                msg = "Custom plugin requires [plugin.parameters].path"
                raise ConfigError(msg)
            return load_custom_transport(path)

        transport_cls = self._transports.get(name)
        if transport_cls is None:
            msg = f"Unknown plugin: {config.name!r} (expected one of {', '.join(self.names())})"
            raise ConfigError(msg)
        logger.debug("Selected transport %s", name)
        return transport_cls()


# Global registry instance
_registry: TransportRegistry | None = None


def get_registry() -> TransportRegistry:
    """Get global transport registry"""
    global _registry
    if _registry is None:
        _registry = TransportRegistry()
    return _registry
