"""Example Transport transport for PhantomKeystroke.

Generated by scripts/scaffold_plugin.py. Load it with:

    [plugin]
    name = "custom"
    [plugin.parameters]
    path = "plugins/example_transport.py"
"""

import json
from pathlib import Path

from phantom.plugins.base import Ack, Transport, TransportHandle, build_payload

PHANTOM_PLUGIN_ABI = 1


class ExampleTransportTransport(Transport):
    """Appends every payload to a JSON-lines file (replace with real delivery)"""

    name = "example_transport"

    async def connect(self, config):
        output = Path(config.parameters.get("output", "example_transport.jsonl"))
        output.parent.mkdir(parents=True, exist_ok=True)
        return TransportHandle(transport=self.name, config=config, session=output)

    async def send(self, handle, command, events):
        with open(handle.session, "a", encoding="utf-8") as f:
            f.write(json.dumps(build_payload(command, events), ensure_ascii=False) + "\n")
        return Ack(delivered=True, detail=f"written to {handle.session}")

    async def shutdown(self, handle):
        handle.connected = False


def create_transport():
    return ExampleTransportTransport()
