#!/usr/bin/env python3
# scripts/scaffold_plugin.py
# Create a Custom transport module under plugins/

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from phantom.exceptions import PluginError  # noqa: E402
from phantom.plugins.scaffold import write_plugin  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Scaffold a PhantomKeystroke Custom transport")
    parser.add_argument("name", help="Plugin name (snake_case)")
    parser.add_argument("-d", "--directory", default=str(PROJECT_ROOT / "plugins"),
                        help="Output directory (default: plugins/)")
    parser.add_argument("-f", "--force", action="store_true", help="Overwrite an existing file")
    args = parser.parse_args(argv)

    try:
        target = write_plugin(args.name, args.directory, force=args.force)
    except PluginError as e:
        print(f"[!] {e}", file=sys.stderr)
        return 1

    print(f"[+] Plugin created: {target}")
    print("    Point [plugin.parameters].path at it and run with -p custom")
    return 0


if __name__ == "__main__":
    sys.exit(main())
