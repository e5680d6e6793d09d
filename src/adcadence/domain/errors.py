"""Exception hierarchy for the controller."""


class AdCadenceError(Exception):
    """Base class for controller errors."""


class InvalidGrantError(AdCadenceError, ValueError):
    """A grant or plan change was rejected without mutating state."""


class PersistenceError(AdCadenceError):
    """A key/value store read or write failed."""


class ControllerDisposedError(AdCadenceError):
    """An operation was attempted after the controller was torn down."""
