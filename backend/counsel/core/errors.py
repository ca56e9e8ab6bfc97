class CounselError(Exception):
    """Base class for every failure an action can run into."""


class ValidationError(CounselError):
    """Required input was empty; raised before any network call."""


class CompletionError(CounselError):
    """The completion call failed or returned no usable text."""


class PersistenceError(CounselError):
    """A history store write or subscription failed."""


class InitializationError(CounselError):
    """Startup configuration or store binding could not be established."""
