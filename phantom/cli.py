# phantom/cli.py
# PhantomKeystroke command line: argument parsing, intake loop, exit codes

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import threading
from collections.abc import AsyncIterator
from typing import TextIO

from rich.console import Console
from rich.markup import escape

from phantom import __version__
from phantom.config import PLUGIN_NAMES, Mode, PhantomConfig, load_config
from phantom.display import make_console, print_banner, render_outcome, render_summary
from phantom.exceptions import ConfigError, ErrorCodes, PluginError, RegionError
from phantom.logging_config import setup_logging
from phantom.plugins.dispatcher import PluginDispatcher
from phantom.plugins.registry import get_registry
from phantom.regions import RANDOM_REGION, SUPPORTED_REGIONS
from phantom.session import ModeController
from phantom.stop_controller import stop_controller

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"exit", "quit"})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phantomkeystroke",
        description="Rewrite commands with a regional persona and replay them as human keystrokes.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-r", "--random", action="store_const", const=Mode.RANDOM, dest="mode",
                      help="Random mode: persona picked by the session PRNG")
    mode.add_argument("-a", "--attribute", action="store_const", const=Mode.ATTRIBUTE, dest="mode",
                      help="Attribute mode: one fixed persona for the whole session")
    parser.add_argument("-t", "--attribution", metavar="CODE",
                        help=f"Persona region ({', '.join((*SUPPORTED_REGIONS, RANDOM_REGION))}) or country alias")
    parser.add_argument("-p", "--plugin", choices=PLUGIN_NAMES, help="Transport plugin")
    parser.add_argument("-c", "--config", metavar="FILE", help="TOML configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show fingerprint changes and keystrokes")
    parser.add_argument("-l", "--log-file", action="store_true", help="Log to logs/ instead of the console")
    parser.add_argument("--seed", type=int, help="Seed for reproducible personas and timing")
    parser.add_argument("--block-on-opsec", action="store_true",
                        help="Attribute mode: refuse to send commands with OPSEC warnings")
    parser.add_argument("--reroll", action="store_true", help="Random mode: new persona for every command")
    parser.add_argument("--no-delay", action="store_true", help="Compute timing but replay without sleeping")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def _stdin_lines(stream: TextIO) -> AsyncIterator[str]:
    """Lines from a non-interactive stream, read on a daemon thread."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    def deliver(line: str | None) -> bool:
        if loop.is_closed():
            return False
        try:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        except RuntimeError:
            # Loop closed between the check and the call
            return False
        return True

    def reader() -> None:
        for line in stream:
            if not deliver(line):
                return
        deliver(None)

    threading.Thread(target=reader, name="phantom-stdin", daemon=True).start()
    while True:
        line = await queue.get()
        if line is None:
            return
        yield line


async def _prompt_lines() -> AsyncIterator[str]:
    """Interactive intake with history and line editing."""
    from prompt_toolkit import PromptSession

    session = PromptSession()
    while True:
        try:
            yield await session.prompt_async("phantom> ")
        except EOFError:
            return
        except KeyboardInterrupt:
            stop_controller.stop(cancel=False)
            return


def command_source() -> AsyncIterator[str]:
    if sys.stdin.isatty():
        return _prompt_lines()
    return _stdin_lines(sys.stdin)


def _install_signal_handlers() -> list[int]:
    """Route SIGINT/SIGTERM to the stop controller; returns the signals bound."""
    loop = asyncio.get_running_loop()
    bound = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_controller.stop)
        except (NotImplementedError, RuntimeError):
            # Windows: asyncio.run turns Ctrl+C into cancellation instead
            continue
        bound.append(sig)
    return bound


def _remove_signal_handlers(bound: list[int]) -> None:
    loop = asyncio.get_running_loop()
    for sig in bound:
        loop.remove_signal_handler(sig)


async def run_session(
    config: PhantomConfig,
    console: Console,
    lines: AsyncIterator[str] | None = None,
    output: TextIO | None = None,
    handle_signals: bool = True,
) -> int:
    """
    Run one persona session until end of input or interrupt.

    Raises:
        ConfigError / RegionError: Persona could not be resolved (exit 1)
        PluginError: Transport could not be loaded or connected (exit 2)
    """
    transport = get_registry().create(
        config.plugin, output=output, realtime=config.realtime, speed=config.speed
    )
    dispatcher = PluginDispatcher(transport, config.plugin)
    controller = ModeController(config, dispatcher)
    session = controller.start()
    await dispatcher.start()

    stop_controller.track(asyncio.current_task())
    print_banner(console, session, transport.name)

    bound = _install_signal_handlers() if handle_signals else []
    interrupted = False
    try:
        async for line in lines or command_source():
            text = line.rstrip("\r\n")
            if not text.strip():
                continue
            if text.strip().lower() in EXIT_COMMANDS:
                break
            # prompt_toolkit drops loop signal handlers after each prompt
            if handle_signals:
                _remove_signal_handlers(bound)
                bound = _install_signal_handlers()
            outcome = await controller.process(text)
            render_outcome(console, outcome, verbose=config.verbose)
    except asyncio.CancelledError:
        if not stop_controller.is_stopped():
            raise
        asyncio.current_task().uncancel()
        interrupted = True
        console.print("\n[yellow]Interrupted, in-flight command discarded[/yellow]")
    finally:
        stop_controller.track(None)
        _remove_signal_handlers(bound)
        await controller.shutdown()
        render_summary(console, session)

    if interrupted or stop_controller.is_stopped():
        return ErrorCodes.INTERRUPTED
    return ErrorCodes.SUCCESS


def main(argv: list[str] | None = None) -> int:
    """Entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    console = make_console()

    try:
        config = load_config(
            args.config,
            mode=args.mode,
            attribution=args.attribution,
            plugin=args.plugin,
            seed=args.seed,
            verbose=args.verbose,
            log_file=args.log_file,
            block_on_opsec=args.block_on_opsec,
            reroll=args.reroll,
        )
    except (ConfigError, RegionError) as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        return ErrorCodes.CONFIG_ERROR
    if args.no_delay:
        config.realtime = False

    setup_logging(
        level=config.log_level,
        log_dir=config.log_dir,
        log_to_file=config.log_to_file,
        log_to_console=not config.log_to_file,
    )
    stop_controller.reset()

    try:
        return asyncio.run(run_session(config, console))
    except (ConfigError, RegionError) as e:
        logger.error("Startup failed: %s", e)
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        return ErrorCodes.CONFIG_ERROR
    except PluginError as e:
        logger.error("Transport failed: %s", e)
        console.print(f"[red]Plugin error:[/red] {escape(str(e))}")
        return ErrorCodes.PLUGIN_CONNECT_ERROR
    except KeyboardInterrupt:
        return ErrorCodes.INTERRUPTED
