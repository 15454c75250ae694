"""PhantomKeystroke Keystroke Timing Simulator.

Turns rewritten command text into a human-like keystroke stream:
- Gaussian inter-key delay scaled by the persona's regional factor,
  clipped to [min_delay, max_delay]
- Occasional short pauses and rare "thinking" pauses
- Typos on neighbouring keys of the persona's layout, followed by a
  backspace and the intended character

The sequence depends only on (text, profile, rng state).
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from phantom.regions import KeystrokeProfile

logger = logging.getLogger(__name__)

BACKSPACE = "\b"


class KeyKind(Enum):
    KEY = "key"
    TYPO = "typo"
    BACKSPACE = "backspace"


@dataclass(frozen=True)
class KeystrokeEvent:
    """One emitted key with its delay since the previous key."""

    char: str
    delay_ms: float
    kind: KeyKind = KeyKind.KEY

    def to_wire(self) -> list:
        return [self.char, self.delay_ms, self.kind.value]


def _adjacency(rows: tuple[str, ...]) -> dict[str, str]:
    """Horizontal and vertical neighbours from keyboard rows."""
    table: dict[str, set[str]] = {}
    for r, row in enumerate(rows):
        for c, key in enumerate(row):
            near = table.setdefault(key, set())
            if c > 0:
                near.add(row[c - 1])
            if c + 1 < len(row):
                near.add(row[c + 1])
            for other in (r - 1, r + 1):
                if 0 <= other < len(rows):
                    for k in rows[other][max(0, c - 1) : c + 2]:
                        near.add(k)
            near.discard(key)
    return {key: "".join(sorted(near)) for key, near in table.items()}


NEIGHBOURS = {
    "qwerty": _adjacency(("qwertyuiop", "asdfghjkl", "zxcvbnm")),
    "qwertz": _adjacency(("qwertzuiop", "asdfghjkl", "yxcvbnm")),
    "azerty": _adjacency(("azertyuiop", "qsdfghjklm", "wxcvbn")),
}


def neighbours(char: str, layout: str = "qwerty") -> str:
    """Keys adjacent to char on the given layout (empty if not a letter key)."""
    table = NEIGHBOURS.get(layout, NEIGHBOURS["qwerty"])
    near = table.get(char.lower(), "")
    return near.upper() if char.isupper() else near


class KeystrokeSimulator:
    """Converts text into an ordered KeystrokeEvent sequence."""

    def simulate(
        self, text: str, profile: KeystrokeProfile, rng: random.Random
    ) -> list[KeystrokeEvent]:
        events: list[KeystrokeEvent] = []
        for char in text:
            near = neighbours(char, profile.layout)
            if near and rng.random() < profile.typo_probability:
                events.append(KeystrokeEvent(rng.choice(near), self._delay(profile, rng), KeyKind.TYPO))
                events.append(KeystrokeEvent(BACKSPACE, self._delay(profile, rng), KeyKind.BACKSPACE))
            events.append(KeystrokeEvent(char, self._delay(profile, rng), KeyKind.KEY))
        return events

    @staticmethod
    def _delay(profile: KeystrokeProfile, rng: random.Random) -> float:
        delay = profile.mean_delay_ms * profile.regional_factor + rng.gauss(
            0.0, profile.jitter_stddev_ms
        )
        delay = min(max(delay, profile.min_delay_ms), profile.max_delay_ms)

        roll = rng.random()
        if roll < profile.think_probability:
            delay += rng.uniform(*profile.think_range_ms)
        elif roll < profile.think_probability + profile.pause_probability:
            delay += rng.uniform(*profile.pause_range_ms)
        return round(delay, 3)


def replay_text(events: Iterable[KeystrokeEvent]) -> str:
    """Text produced by the intended keys, ignoring corrections."""
    return "".join(e.char for e in events if e.kind is KeyKind.KEY)


def total_duration_ms(events: Iterable[KeystrokeEvent]) -> float:
    return sum(e.delay_ms for e in events)


async def replay(
    events: Iterable[KeystrokeEvent],
    write: Callable[[KeystrokeEvent], None],
    speed: float = 1.0,
    realtime: bool = True,
) -> None:
    """
    Emit events through write(), sleeping between keys.

    Sleeping is the only suspension point, so cancelling the task stops
    emission at the next key.
    """
    for event in events:
        if realtime and event.delay_ms > 0:
            await asyncio.sleep(event.delay_ms / 1000.0 / speed)
        write(event)
