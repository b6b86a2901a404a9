# Define common exceptions so services raise the same errors
# (e.g., RecordNotFound, StorageError).


class RecordNotFound(Exception):
    """Raised when a record is not found in the database."""

    pass


class StorageError(Exception):
    """Raised when the database is unavailable or a write failed."""

    pass
