"""PhantomKeystroke - attribution deception for operator commands."""

__version__ = "0.1.0"
