#!/usr/bin/env python3
# phantomkeystroke.py
# PhantomKeystroke - attribution deception engine

import logging
import os
import sys
from pathlib import Path

# Add project root to path (must precede local imports)
PROJECT_ROOT: Path = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from phantom.cli import main  # noqa: E402
from phantom.logging_config import get_logger  # noqa: E402

logger: logging.Logger = get_logger("main")


def global_exception_handler(exc_type, exc_value, exc_traceback) -> None:
    """Crash reporter: writes a crash dump for any unhandled exception."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    import platform
    import traceback
    from datetime import datetime

    from rich.console import Console
    from rich.panel import Panel

    crash_time = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir = PROJECT_ROOT / "logs" / "crash_reports"
    log_dir.mkdir(parents=True, exist_ok=True)
    crash_file = log_dir / f"crash_{crash_time}.log"

    tb_text = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))

    with open(crash_file, "w", encoding="utf-8") as f:
        f.write(f"PHANTOMKEYSTROKE CRASH REPORT - {crash_time}\n")
        f.write("=" * 50 + "\n")
        f.write(f"Type: {exc_type.__name__}\n")
        f.write(f"Message: {exc_value!s}\n")
        f.write("-" * 50 + "\n")
        f.write(tb_text)
        f.write("=" * 50 + "\n")
        f.write(f"OS: {platform.system()} {platform.release()}\n")
        f.write(f"Python: {sys.version}\n")

    logger.critical(
        "Unhandled exception caught! Crash dump saved to %s",
        crash_file,
        exc_info=(exc_type, exc_value, exc_traceback),
    )

    Console(stderr=True).print(
        Panel(
            f"[bold red]Unhandled error[/bold red]\n\n"
            f"Crash dump written to: [yellow]{crash_file}[/yellow]\n\n"
            f"Error: {exc_type.__name__}: {exc_value!s}",
            title="PhantomKeystroke crash reporter",
            border_style="red",
        ),
    )
    logging.shutdown()
    sys.exit(1)


# Install exception hook
sys.excepthook = global_exception_handler


if __name__ == "__main__":
    # Windows UTF-8 support
    if os.name == "nt":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.exit(main())
