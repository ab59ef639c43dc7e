"""
Shared error types for core services.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class StorageError(RuntimeError):
    """Raised when the store is unreachable or a constraint is violated."""


class SessionNotFound(LookupError):
    def __init__(self, conversation_id: str, name: str):
        super().__init__(f"No session named {name!r} in conversation {conversation_id!r}")
        self.conversation_id = conversation_id
        self.name = name


class CompletionServiceError(RuntimeError):
    """Raised when the completion service fails or times out."""
