# phantom/plugins/__init__.py
# PhantomKeystroke Transport Plugins

from .base import Ack, Transport, TransportHandle, TransportKind, build_payload
from .dispatcher import PluginDispatcher
from .registry import TransportRegistry, get_registry

__all__ = [
    "Ack",
    "Transport",
    "TransportHandle",
    "TransportKind",
    "build_payload",
    "PluginDispatcher",
    "TransportRegistry",
    "get_registry",
]
