"""Exception types raised by the progress and scoring core."""


class NihonwaError(Exception):
    """Base class for all application errors."""


class InvalidInputError(NihonwaError, ValueError):
    """Input rejected at the boundary of a pure scoring function."""


class UnknownLevelError(InvalidInputError):
    """Raised for a JLPT level key outside N5..N1."""

    def __init__(self, level: object):
        super().__init__(f"Unknown JLPT level: {level!r}")
        self.level = level


class PersistenceError(NihonwaError):
    """The persistence collaborator failed to read or write state."""


class ProfileExistsError(NihonwaError, ValueError):
    """A profile with the same id is already registered."""


class ItemNotFoundError(NihonwaError, KeyError):
    """No learnable item is stored under the requested id."""


class ProfileNotFoundError(NihonwaError, KeyError):
    """No profile is registered under the requested id."""
