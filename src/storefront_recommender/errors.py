"""Error types raised by the recommendation engine."""


class RecommenderError(Exception):
    """Base class for all engine errors."""


class InvalidRequest(RecommenderError):
    """The caller broke the request contract (missing shop, bad limit, unknown type)."""


class NotFound(RecommenderError):
    """A referenced product or profile does not exist."""

    def __init__(self, entity: str, identifier: str):
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class StorageUnavailable(RecommenderError):
    """A read or write against the storage collaborator failed."""

    def __init__(self, operation: str, detail: str = ""):
        message = f"storage operation failed: {operation}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.operation = operation
