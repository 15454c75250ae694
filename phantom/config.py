# phantom/config.py
# Configuration loading: TOML file, environment overrides, CLI flags
# Precedence: CLI > environment > file > defaults

import logging
import os
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from phantom.exceptions import ConfigError
from phantom.regions import RANDOM_REGION, parse_timezone_offset, resolve_code

# Setup logger
logger = logging.getLogger(__name__)

# Constants
ENV_PATH = "config/phantom.env"


# ===========================================
# TRANSPORT CONFIGURATION
# Shared by the network-backed plugins
# ===========================================
class TransportConfig:
    """Centralized transport settings for consistency."""

    DEFAULT_TIMEOUT = 10  # seconds per request

    # Retry settings
    MAX_RETRY_ATTEMPTS = 3
    RETRY_BASE_DELAY = 0.1  # seconds
    RETRY_MAX_DELAY = 5.0  # back-off cap

    # Backend defaults
    COBALTSTRIKE_ENDPOINT = "http://localhost:50050"
    SLIVER_ADDRESS = "localhost:31337"
    MYTHIC_URL = "http://localhost:7443"
    MYTHIC_API_VERSION = "v1.4"


# Export for easy import
TRANSPORT_CONFIG = TransportConfig()


class Mode(Enum):
    """Persona mode selected at startup."""

    RANDOM = "random"
    ATTRIBUTE = "attribute"


# Original config files used numbers for [mode].type
_MODE_ALIASES = {
    "random": Mode.RANDOM,
    "attribute": Mode.ATTRIBUTE,
    "1": Mode.RANDOM,
    "2": Mode.ATTRIBUTE,
}

PLUGIN_NAMES = ("null", "cobaltstrike", "sliver", "mythic", "custom")


@dataclass
class PluginConfig:
    """Transport selection and parameters, handed to Transport.connect()."""

    name: str = "null"
    parameters: dict[str, Any] = field(default_factory=dict)
    timeout: float = TransportConfig.DEFAULT_TIMEOUT
    max_retries: int = TransportConfig.MAX_RETRY_ATTEMPTS


@dataclass
class PhantomConfig:
    """PhantomKeystroke configuration."""

    # Persona
    mode: Mode = Mode.RANDOM
    attribution: str | None = None  # region code or "random"
    timezone_offset: int | None = None  # minutes, overrides the profile
    reroll_per_command: bool = False
    seed: int | None = None

    # OPSEC
    block_on_warning: bool = False

    # Keystroke replay
    realtime: bool = True
    speed: float = 1.0

    # Transport
    plugin: PluginConfig = field(default_factory=PluginConfig)

    # Output
    verbose: bool = False
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"

    def validate(self) -> "PhantomConfig":
        """Reject combinations that cannot start a session."""
        if self.mode is Mode.ATTRIBUTE and not self.attribution:
            msg = "Attribute mode requires an attribution (-t or [attribute].country)"
            raise ConfigError(msg)
        if self.plugin.name not in PLUGIN_NAMES:
            msg = f"Unknown plugin: {self.plugin.name!r} (expected one of {', '.join(PLUGIN_NAMES)})"
            raise ConfigError(msg)
        if self.plugin.name == "custom" and not self.plugin.parameters.get("path"):
            msg = "Custom plugin requires [plugin.parameters].path"
            raise ConfigError(msg)
        if self.speed <= 0:
            msg = f"Replay speed must be positive, got {self.speed}"
            raise ConfigError(msg)
        if self.plugin.timeout <= 0 or self.plugin.max_retries < 0:
            msg = "Plugin timeout must be positive and max_retries non-negative"
            raise ConfigError(msg)
        return self


def parse_mode(value) -> Mode:
    if isinstance(value, Mode):
        return value
    if isinstance(value, bool):
        msg = f"Invalid mode: {value!r}"
        raise ConfigError(msg)
    mode = _MODE_ALIASES.get(str(value).strip().lower())
    if mode is None:
        msg = f"Invalid mode: {value!r} (expected random, attribute, 1 or 2)"
        raise ConfigError(msg)
    return mode


def _section(data: dict, name: str) -> dict:
    section = data.get(name, {})
    if not isinstance(section, dict):
        msg = f"[{name}] must be a table"
        raise ConfigError(msg)
    return section


def _typed(section: dict, name: str, key: str, types: tuple, default=None):
    if key not in section:
        return default
    value = section[key]
    # bool is an int subclass; only accept it where bool is asked for
    if isinstance(value, bool) and bool not in types:
        value = None
    if not isinstance(value, types):
        expected = "/".join(t.__name__ for t in types)
        msg = f"[{name}].{key} must be {expected}, got {section[key]!r}"
        raise ConfigError(msg)
    return value


def config_from_dict(data: dict) -> PhantomConfig:
    """Build a PhantomConfig from a parsed TOML document."""
    config = PhantomConfig()

    mode = _section(data, "mode")
    if "type" in mode:
        config.mode = parse_mode(mode["type"])
    config.reroll_per_command = _typed(mode, "mode", "reroll_per_command", (bool,), False)
    config.seed = _typed(mode, "mode", "seed", (int,))

    attribute = _section(data, "attribute")
    country = _typed(attribute, "attribute", "country", (str,))
    language = _typed(attribute, "attribute", "language", (str,))
    if country:
        config.attribution = resolve_code(country)
    elif language:
        config.attribution = resolve_code(language)
    if "timezone" in attribute:
        config.timezone_offset = parse_timezone_offset(attribute["timezone"])

    opsec = _section(data, "opsec")
    config.block_on_warning = _typed(opsec, "opsec", "block_on_warning", (bool,), False)

    keystroke = _section(data, "keystroke")
    config.realtime = _typed(keystroke, "keystroke", "realtime", (bool,), True)
    config.speed = float(_typed(keystroke, "keystroke", "speed", (int, float), 1.0))

    plugin = _section(data, "plugin")
    parameters = _section(plugin, "parameters") if plugin else {}
    config.plugin = PluginConfig(
        name=_typed(plugin, "plugin", "name", (str,), "null").lower(),
        parameters=dict(parameters),
        timeout=float(
            _typed(plugin, "plugin", "timeout", (int, float), TransportConfig.DEFAULT_TIMEOUT)
        ),
        max_retries=_typed(
            plugin, "plugin", "max_retries", (int,), TransportConfig.MAX_RETRY_ATTEMPTS
        ),
    )
    return config


def read_config_file(path: str | Path) -> PhantomConfig:
    """Parse a TOML config file; any problem is a ConfigError."""
    config_path = Path(path)
    if not config_path.is_file():
        msg = f"Config file not found: {config_path}"
        raise ConfigError(msg)
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read {config_path}: {e}"
        raise ConfigError(msg) from e

    logger.debug("Loaded config file %s", config_path)
    return config_from_dict(data)


def apply_env(config: PhantomConfig, env_file: str | Path | None = ENV_PATH) -> PhantomConfig:
    """Apply PHANTOM_* overrides from the env file and the process environment."""
    if env_file and Path(env_file).exists():
        load_dotenv(env_file)

    seed = os.getenv("PHANTOM_SEED")
    if seed:
        try:
            config.seed = int(seed)
        except ValueError as e:
            msg = f"PHANTOM_SEED must be an integer, got {seed!r}"
            raise ConfigError(msg) from e
    if os.getenv("PHANTOM_PLUGIN"):
        config.plugin.name = os.getenv("PHANTOM_PLUGIN").strip().lower()
    if os.getenv("PHANTOM_ATTRIBUTION"):
        config.attribution = resolve_code(os.getenv("PHANTOM_ATTRIBUTION"))
    if os.getenv("PHANTOM_LOG_LEVEL"):
        config.log_level = os.getenv("PHANTOM_LOG_LEVEL").strip().upper()
    return config


def apply_cli(
    config: PhantomConfig,
    mode: Mode | None = None,
    attribution: str | None = None,
    plugin: str | None = None,
    seed: int | None = None,
    verbose: bool = False,
    log_file: bool = False,
    block_on_opsec: bool = False,
    reroll: bool = False,
) -> PhantomConfig:
    """Overlay command-line flags; unset flags leave the config untouched."""
    if mode is not None:
        config.mode = mode
    if attribution is not None:
        config.attribution = resolve_code(attribution)
    if plugin is not None:
        config.plugin.name = plugin.lower()
    if seed is not None:
        config.seed = seed
    config.verbose = config.verbose or verbose
    config.log_to_file = config.log_to_file or log_file
    config.block_on_warning = config.block_on_warning or block_on_opsec
    config.reroll_per_command = config.reroll_per_command or reroll
    return config


def load_config(
    path: str | Path | None = None,
    env_file: str | Path | None = ENV_PATH,
    **cli,
) -> PhantomConfig:
    """
    Resolve the effective configuration.

    Args:
        path: Optional TOML file (-c/--config)
        env_file: dotenv file with PHANTOM_* overrides
        **cli: Flags accepted by apply_cli()

    Returns:
        Validated PhantomConfig

    Raises:
        ConfigError: Missing/malformed file or inconsistent settings
        UnknownRegion: Attribution names no supported region
    """
    config = read_config_file(path) if path else PhantomConfig()
    apply_env(config, env_file)
    apply_cli(config, **cli)
    if config.attribution == RANDOM_REGION and config.mode is Mode.RANDOM:
        config.attribution = None
    return config.validate()
