"""Custom exceptions for beatpulse."""


class AudioLoadError(Exception):
    """Raised when an audio file cannot be loaded or decoded."""

    pass


class ConfigError(Exception):
    """Raised when a tunables file cannot be read or names an unknown setting."""

    pass


class UnknownEffectError(Exception):
    """Raised when an effect name does not match any known effect."""

    pass
