class ExpenseValidationError(ValueError):
    """Input rejected before any storage call was attempted."""


class NotFoundError(ValueError):
    pass


class StaleOccurrenceError(ValueError):
    """The occurrence the caller acted on has already been handled."""


class StorageError(Exception):
    pass


class ConstraintViolation(StorageError):
    """A delete or write was blocked by a foreign-key or check constraint."""


class UnknownFrequencyError(RuntimeError):
    """A recurring template carries a frequency the scheduler cannot advance.

    Indicates corrupt data upstream. Must not subclass ``ValueError``: the
    API layer maps those to 4xx responses.
    """
