"""
Custom exceptions for PhantomKeystroke
Startup errors are fatal, per-command errors are reported and survived
"""


class PhantomException(Exception):
    """Base exception for all PhantomKeystroke errors"""
    pass


class ConfigError(PhantomException):
    """Malformed or missing configuration"""
    pass


class RegionError(PhantomException):
    """Exceptions related to region profile resolution"""
    pass


class UnknownRegion(RegionError):
    """Region code is not in the supported set"""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Unknown region: {code!r}")


class PluginError(PhantomException):
    """Exceptions raised by transport plugins"""
    pass


class ConnectFailed(PluginError):
    """Transport could not establish a session handle"""
    pass


class AbiMismatch(PluginError):
    """Custom transport module exposes an incompatible interface version"""

    def __init__(self, path: str, expected: int, found):
        self.path = path
        self.expected = expected
        self.found = found
        super().__init__(
            f"Plugin {path} declares ABI {found!r}, expected {expected}"
        )


class SendFailed(PluginError):
    """A single command could not be delivered"""
    pass


class InjectionSkipped(PhantomException):
    """Command text could not be segmented safely; left untouched"""
    pass


class OpsecWarning(PhantomException):
    """Operation conflicts with the asserted persona"""

    def __init__(self, verdict):
        self.verdict = verdict
        super().__init__(f"OPSEC warning: {verdict.reason}")


class SessionStateError(PhantomException):
    """Illegal mode controller transition"""
    pass


# Exit codes
class ErrorCodes:
    """Process exit codes"""
    SUCCESS = 0
    CONFIG_ERROR = 1
    PLUGIN_CONNECT_ERROR = 2
    INTERRUPTED = 130
