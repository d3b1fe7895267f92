class HbgDBError(Exception):
    """Base class for all HBG DB exceptions."""


class DoesNotExistError(HbgDBError, ValueError):
    """Raised when a single object was expected but none was found."""


class MultipleObjectsReturnedError(HbgDBError, ValueError):
    """Raised when a single object was expected but multiple were found."""
