# phantom/plugins/scaffold.py
# Generates a ready-to-edit Custom transport module

import logging
import re
from pathlib import Path
from string import Template

from phantom.exceptions import PluginError
from phantom.plugins.loader import CURRENT_ABI

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

PLUGIN_TEMPLATE = Template('''"""$title transport for PhantomKeystroke.

Generated by scripts/scaffold_plugin.py. Load it with:

    [plugin]
    name = "custom"
    [plugin.parameters]
    path = "plugins/$name.py"
"""

import json
from pathlib import Path

from phantom.plugins.base import Ack, Transport, TransportHandle, build_payload

PHANTOM_PLUGIN_ABI = $abi


class ${class_name}Transport(Transport):
    """Appends every payload to a JSON-lines file (replace with real delivery)"""

    name = "$name"

    async def connect(self, config):
        output = Path(config.parameters.get("output", "$name.jsonl"))
        output.parent.mkdir(parents=True, exist_ok=True)
        return TransportHandle(transport=self.name, config=config, session=output)

    async def send(self, handle, command, events):
        with open(handle.session, "a", encoding="utf-8") as f:
            f.write(json.dumps(build_payload(command, events), ensure_ascii=False) + "\\n")
        return Ack(delivered=True, detail=f"written to {handle.session}")

    async def shutdown(self, handle):
        handle.connected = False


def create_transport():
    return ${class_name}Transport()
''')


def _class_name(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_") if part)


def render_plugin(name: str) -> str:
    """Source of a Custom transport module named name (snake_case)."""
    if not _NAME_PATTERN.match(name):
        msg = f"Invalid plugin name {name!r}: use lowercase letters, digits and underscores"
        raise PluginError(msg)
    return PLUGIN_TEMPLATE.substitute(
        name=name,
        title=name.replace("_", " ").title(),
        class_name=_class_name(name),
        abi=CURRENT_ABI,
    )


def write_plugin(name: str, directory: str | Path = "plugins", force: bool = False) -> Path:
    """Write plugins/<name>.py; refuses to overwrite unless force."""
    target = Path(directory) / f"{name}.py"
    source = render_plugin(name)
    if target.exists() and not force:
        msg = f"Plugin file already exists: {target}"
        raise PluginError(msg)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(source, encoding="utf-8")
    logger.info("Plugin scaffold written: %s", target)
    return target
