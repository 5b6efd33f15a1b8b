class ArchiveError(Exception):
    """Base class for failures reported by the task lifecycle services."""


class StoreUnavailable(ArchiveError):
    """The task store could not be reached or rejected the statement."""


class NotFound(ArchiveError):
    """The referenced task does not exist."""


class Unauthorized(ArchiveError):
    """The remote archive trigger was called without the shared secret."""


class PartialQueryFailure(ArchiveError):
    """One of the independent archive stat counts failed."""

    def __init__(self, count_name, cause):
        super().__init__(f"Failed to count {count_name}: {cause}")
        self.count_name = count_name
        self.cause = cause


class InvalidTransition(ArchiveError):
    """The task is not in a state that allows the requested change."""
