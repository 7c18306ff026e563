"""Exceptions shared by the component store and the incident engine."""


class StatusPageError(Exception):
    """Base class for status page domain errors."""


class NotFoundError(StatusPageError):
    """A referenced record does not exist."""


class ComponentNotFound(NotFoundError):
    def __init__(self, component_id):
        self.component_id = component_id
        super().__init__(f"Component {component_id} not found")


class GroupNotFound(NotFoundError):
    def __init__(self, group_id):
        self.group_id = group_id
        super().__init__(f"Group {group_id} not found")


class InvalidStatusError(StatusPageError, ValueError):
    """A status value is not one of the allowed choices."""


class ConcurrentUpdateError(StatusPageError):
    """A versioned row changed between read and write.

    Raised inside an atomic unit; run_atomic rolls back and retries.
    """


class TransactionFailure(StatusPageError):
    """The atomic unit could not be committed. Nothing was written."""
