"""Exception hierarchy for oversight."""


class OversightError(Exception):
    """Base exception for oversight errors."""

    pass


class ConfigurationError(OversightError):
    """Configuration file could not be read or validated."""

    pass


class StorageError(OversightError):
    """Persisted engine state could not be read or written."""

    pass
