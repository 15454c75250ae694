"""PhantomKeystroke Persona Session and Mode Controller.

The ModeController is the only writer of the PersonaSession. For every
operator command it runs, in order:

    FingerprintInjector -> KeystrokeSimulator -> OpsecValidator -> PluginDispatcher

Per-command failures become a CommandOutcome; only delivered commands
enter the audit history. A cancelled command leaves no trace.
"""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from phantom.config import Mode, PhantomConfig
from phantom.exceptions import ConfigError, OpsecWarning, SendFailed, SessionStateError
from phantom.fingerprint import FingerprintedCommand, FingerprintInjector
from phantom.keystroke import KeystrokeEvent, KeystrokeSimulator
from phantom.logging_config import log_opsec_event
from phantom.opsec import OpsecValidator, OpsecVerdict
from phantom.plugins.base import Ack
from phantom.plugins.dispatcher import PluginDispatcher
from phantom.regions import RANDOM_REGION, RegionProfile, RegionRegistry, get_registry

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


class ModeState(Enum):
    IDLE = "idle"
    RANDOM_ACTIVE = "random_active"
    ATTRIBUTE_ACTIVE = "attribute_active"
    SHUTTING_DOWN = "shutting_down"


_TRANSITIONS = {
    ModeState.IDLE: frozenset({ModeState.RANDOM_ACTIVE, ModeState.ATTRIBUTE_ACTIVE}),
    ModeState.RANDOM_ACTIVE: frozenset({ModeState.SHUTTING_DOWN}),
    ModeState.ATTRIBUTE_ACTIVE: frozenset({ModeState.SHUTTING_DOWN}),
    ModeState.SHUTTING_DOWN: frozenset(),
}

_ACTIVE_STATE = {Mode.RANDOM: ModeState.RANDOM_ACTIVE, Mode.ATTRIBUTE: ModeState.ATTRIBUTE_ACTIVE}


class CommandStatus(Enum):
    DELIVERED = "delivered"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandRecord:
    """Audit history entry for a delivered command."""

    sequence: int
    region: str
    original_text: str
    rewritten_text: str
    verdict: OpsecVerdict
    timestamp: str
    attempts: int = 1


@dataclass
class CommandOutcome:
    """
    Result of processing one command.

    Attributes:
        status: DELIVERED, BLOCKED (OPSEC) or FAILED (transport)
        command: Fingerprinting result
        events: Keystroke sequence that was (or would have been) sent
        verdict: OPSEC verdict for this command
        region: Persona code in force
        timestamp: Emulated persona-local time
        ack: Transport acknowledgement when delivered
        error: Reason when not delivered
    """

    status: CommandStatus
    command: FingerprintedCommand
    events: list[KeystrokeEvent]
    verdict: OpsecVerdict
    region: str
    timestamp: str
    ack: Ack | None = None
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status is CommandStatus.DELIVERED


@dataclass
class PersonaSession:
    """Active persona. Mutated only by the ModeController; never persisted."""

    profile: RegionProfile
    mode: Mode
    seed: int
    rng: random.Random | None = None
    state: ModeState = ModeState.IDLE
    pinned: bool = False
    opsec_history: deque[OpsecVerdict] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))
    history: deque[CommandRecord] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))
    commands_seen: int = 0

    def __post_init__(self):
        if self.rng is None:
            self.rng = random.Random(self.seed)

    def transition(self, new_state: ModeState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            msg = f"Illegal mode transition {self.state.value} -> {new_state.value}"
            raise SessionStateError(msg)
        logger.debug("Mode state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    @property
    def active(self) -> bool:
        return self.state in (ModeState.RANDOM_ACTIVE, ModeState.ATTRIBUTE_ACTIVE)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModeController:
    """Owns the PersonaSession and runs the per-command pipeline."""

    def __init__(
        self,
        config: PhantomConfig,
        dispatcher: PluginDispatcher,
        registry: RegionRegistry | None = None,
        injector: FingerprintInjector | None = None,
        simulator: KeystrokeSimulator | None = None,
        validator: OpsecValidator | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.registry = registry or get_registry()
        self.injector = injector or FingerprintInjector()
        self.simulator = simulator or KeystrokeSimulator()
        self.validator = validator or OpsecValidator()
        self.clock = clock
        self.session: PersonaSession | None = None
        self._lock = asyncio.Lock()

    def start(self) -> PersonaSession:
        """
        Leave IDLE: seed the PRNG and fix the persona.

        Raises:
            ConfigError: Attribute mode without attribution
            UnknownRegion: Attribution is not a supported region
        """
        if self.session is not None:
            self.session.transition(_ACTIVE_STATE[self.config.mode])

        seed = self.config.seed
        if seed is None:
            seed = secrets.randbits(63)
            logger.info("No seed configured, using %d", seed)
        rng = random.Random(seed)

        attribution = self.config.attribution
        if self.config.mode is Mode.ATTRIBUTE and not attribution:
            msg = "Attribute mode requires an attribution"
            raise ConfigError(msg)

        pinned = bool(attribution) and attribution != RANDOM_REGION
        if pinned:
            profile = self.registry.lookup(attribution)
        else:
            profile = self.registry.random(rng)
        profile = self._localize(profile)

        session = PersonaSession(profile=profile, mode=self.config.mode, seed=seed, rng=rng, pinned=pinned)
        session.transition(_ACTIVE_STATE[self.config.mode])
        self.session = session
        logger.info(
            "Session started: mode=%s persona=%s (%s) seed=%d",
            session.mode.value,
            profile.code,
            profile.utc_label(),
            seed,
        )
        return session

    def _localize(self, profile: RegionProfile) -> RegionProfile:
        if self.config.timezone_offset is None:
            return profile
        return profile.with_timezone(self.config.timezone_offset)

    def _require_active(self) -> PersonaSession:
        if self.session is None or not self.session.active:
            state = self.session.state.value if self.session else ModeState.IDLE.value
            msg = f"Cannot process commands in state {state}"
            raise SessionStateError(msg)
        return self.session

    @property
    def blocking(self) -> bool:
        return self.config.mode is Mode.ATTRIBUTE and self.config.block_on_warning

    async def process(self, text: str) -> CommandOutcome:
        """
        Fingerprint, time, validate and deliver one command.

        Commands are processed strictly one at a time. Cancellation
        propagates and nothing is recorded for the cancelled command.
        """
        async with self._lock:
            session = self._require_active()

            if session.mode is Mode.RANDOM and self.config.reroll_per_command and not session.pinned:
                session.profile = self._localize(self.registry.random(session.rng))
                logger.debug("Persona re-rolled: %s", session.profile.code)

            profile = session.profile
            command = self.injector.inject(text, profile, session.rng)
            events = self.simulator.simulate(command.rewritten_text, profile.keystroke_profile, session.rng)

            now = self.clock()
            verdict = self.validator.assess(now, command.rewritten_text, profile)
            timestamp = profile.format_timestamp(now)
            if verdict.suspicious:
                log_opsec_event(logger, profile.code, verdict.reason, self.blocking)

            outcome = CommandOutcome(
                status=CommandStatus.FAILED,
                command=command,
                events=events,
                verdict=verdict,
                region=profile.code,
                timestamp=timestamp,
            )
            try:
                if verdict.suspicious and self.blocking:
                    raise OpsecWarning(verdict)
                ack = await self.dispatcher.send(command, events)
            except OpsecWarning as e:
                outcome.status = CommandStatus.BLOCKED
                outcome.error = str(e)
            except SendFailed as e:
                logger.warning("Send failed: %s", e)
                outcome.error = str(e)
            else:
                outcome.status = CommandStatus.DELIVERED
                outcome.ack = ack
                session.commands_seen += 1
                session.history.append(
                    CommandRecord(
                        sequence=session.commands_seen,
                        region=profile.code,
                        original_text=command.original_text,
                        rewritten_text=command.rewritten_text,
                        verdict=verdict,
                        timestamp=timestamp,
                        attempts=ack.attempts,
                    )
                )
                logger.info("[%s] %r -> %r", profile.code, command.original_text, command.rewritten_text)

            session.opsec_history.append(verdict)
            return outcome

    async def shutdown(self) -> None:
        """Enter SHUTTING_DOWN after the in-flight command, then close the transport."""
        async with self._lock:
            if self.session is None:
                msg = "Cannot shut down a session that never started"
                raise SessionStateError(msg)
            if self.session.state is ModeState.SHUTTING_DOWN:
                return
            self.session.transition(ModeState.SHUTTING_DOWN)
            await self.dispatcher.shutdown()
            logger.info(
                "Session closed: %d delivered, %d verdict(s) recorded",
                len(self.session.history),
                len(self.session.opsec_history),
            )
