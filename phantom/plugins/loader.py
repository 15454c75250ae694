# phantom/plugins/loader.py
# PhantomKeystroke Custom Transport Loader
# Loads a transport module from a file path and verifies its interface version

import importlib.util
import logging
import sys
from pathlib import Path

from phantom.exceptions import AbiMismatch, ConnectFailed
from phantom.plugins.base import Transport

logger = logging.getLogger(__name__)

CURRENT_ABI = 1
ABI_SYMBOL = "PHANTOM_PLUGIN_ABI"
FACTORY_SYMBOL = "create_transport"
MODULE_NAMESPACE = "phantom_plugins"


def load_custom_transport(path: str | Path) -> Transport:
    """Import a Custom transport module.

    The module must declare PHANTOM_PLUGIN_ABI equal to CURRENT_ABI and
    a create_transport() factory returning a Transport. The version is
    checked before any plugin code beyond module import runs.

    Raises:
        ConnectFailed: File missing, module fails to import or factory raises
        AbiMismatch: Wrong or missing ABI version, or no usable factory
    """
    file_path = Path(path)
    if not file_path.is_file():
        msg = f"Custom plugin not found: {file_path}"
        raise ConnectFailed(msg)

    # Namespace isolation: plugin names cannot shadow real modules
    isolated_name = f"{MODULE_NAMESPACE}.{file_path.stem}"
    spec = importlib.util.spec_from_file_location(isolated_name, file_path)
    if not spec or not spec.loader:
        msg = f"Cannot import custom plugin: {file_path}"
        raise ConnectFailed(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[isolated_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(isolated_name, None)
        msg = f"Failed to load custom plugin {file_path}: {e}"
        raise ConnectFailed(msg) from e

    abi = getattr(module, ABI_SYMBOL, None)
    if isinstance(abi, bool) or abi != CURRENT_ABI:
        sys.modules.pop(isolated_name, None)
        raise AbiMismatch(str(file_path), CURRENT_ABI, abi)

    factory = getattr(module, FACTORY_SYMBOL, None)
    if not callable(factory):
        sys.modules.pop(isolated_name, None)
        raise AbiMismatch(str(file_path), CURRENT_ABI, f"{abi} without {FACTORY_SYMBOL}()")

    try:
        transport = factory()
    except Exception as e:
        sys.modules.pop(isolated_name, None)
        msg = f"Custom plugin {file_path} failed in {FACTORY_SYMBOL}(): {e}"
        raise ConnectFailed(msg) from e
    if not isinstance(transport, Transport):
        sys.modules.pop(isolated_name, None)
        raise AbiMismatch(
            str(file_path), CURRENT_ABI, f"{FACTORY_SYMBOL}() returned {type(transport).__name__}"
        )

    logger.info("Custom transport loaded: %s from %s", transport.name, file_path.name)
    return transport
