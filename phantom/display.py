# phantom/display.py
# PhantomKeystroke terminal output (rich)
# Status goes to stderr; stdout is reserved for the null transport's replay

from __future__ import annotations

from collections import Counter

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from phantom.keystroke import KeyKind, total_duration_ms
from phantom.session import CommandOutcome, CommandStatus, PersonaSession

STATUS_STYLE = {
    CommandStatus.DELIVERED: "green",
    CommandStatus.BLOCKED: "yellow",
    CommandStatus.FAILED: "red",
}

KIND_STYLE = {
    KeyKind.KEY: "white",
    KeyKind.TYPO: "magenta",
    KeyKind.BACKSPACE: "cyan",
}


def make_console() -> Console:
    return Console(stderr=True, highlight=False)


def _visible(char: str) -> str:
    if char == "\b":
        return "⌫"
    if char == " ":
        return "␠"
    return char


def print_banner(console: Console, session: PersonaSession, transport: str) -> None:
    profile = session.profile
    console.print(
        Panel(
            f"Mode: [bold]{session.mode.value}[/bold]\n"
            f"Persona: [bold cyan]{profile.name}[/bold cyan] ({profile.code}, {profile.utc_label()})\n"
            f"Transport: {transport}\n"
            f"Seed: {session.seed}",
            title="PhantomKeystroke",
            border_style="cyan",
        )
    )


def diff_table(outcome: CommandOutcome) -> Table:
    table = Table(title="Fingerprint changes", show_lines=False)
    table.add_column("Offset", justify="right")
    table.add_column("Span")
    table.add_column("Before")
    table.add_column("After")
    table.add_column("Rules")
    for offset in sorted(outcome.command.diff_map):
        entry = outcome.command.diff_map[offset]
        rules = ", ".join(f"{c.rule}:{c.before!r}->{c.after!r}" for c in entry.changes)
        table.add_row(str(offset), entry.kind.value, escape(entry.before), escape(entry.after), escape(rules))
    return table


def keystroke_table(outcome: CommandOutcome) -> Table:
    table = Table(
        title=f"Keystrokes ({len(outcome.events)} events, {total_duration_ms(outcome.events):.0f} ms)"
    )
    table.add_column("#", justify="right")
    table.add_column("Key")
    table.add_column("Delay ms", justify="right")
    table.add_column("Kind")
    for i, event in enumerate(outcome.events):
        style = KIND_STYLE[event.kind]
        table.add_row(
            str(i), escape(_visible(event.char)), f"{event.delay_ms:.1f}", f"[{style}]{event.kind.value}[/{style}]"
        )
    return table


def render_outcome(console: Console, outcome: CommandOutcome, verbose: bool = False) -> None:
    style = STATUS_STYLE[outcome.status]
    console.print(
        f"[dim]{outcome.timestamp}[/dim] [{style}]{outcome.status.value.upper()}[/{style}] "
        f"[cyan]{outcome.region}[/cyan] {escape(outcome.command.rewritten_text)}",
        markup=True,
        soft_wrap=True,
    )
    if outcome.verdict.suspicious:
        console.print(f"  [yellow]OPSEC:[/yellow] {escape(outcome.verdict.reason)}")
    if outcome.command.skipped_reason:
        console.print(f"  [yellow]Fingerprinting skipped:[/yellow] {escape(outcome.command.skipped_reason)}")
    if outcome.error and outcome.status is not CommandStatus.BLOCKED:
        console.print(f"  [red]{escape(outcome.error)}[/red]")

    if verbose:
        if outcome.command.diff_map:
            console.print(diff_table(outcome))
        console.print(keystroke_table(outcome))


def render_summary(console: Console, session: PersonaSession) -> None:
    suspicious = sum(1 for v in session.opsec_history if v.suspicious)
    # Rerolled sessions deliver under several personas
    per_region = Counter(record.region for record in session.history)
    personas = ", ".join(f"[cyan]{code}[/cyan] ({count})" for code, count in per_region.items())
    if not personas:
        personas = f"[cyan]{session.profile.code}[/cyan]"
    console.print(
        f"[bold]{len(session.history)}[/bold] command(s) delivered as "
        f"{personas}, {suspicious} OPSEC warning(s)"
    )
