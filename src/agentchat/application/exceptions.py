"""Application-level exceptions.

These are business-logic errors, not HTTP errors. The presentation layer
(e.g. FastAPI routes) translates them into appropriate HTTP responses.
"""


class EmptyConversationError(ValueError):
    """Raised when a chat turn carries no user message."""


class AuthenticationRequiredError(PermissionError):
    """Raised when an operation needs a session and none was provided."""


class ChatAccessDeniedError(PermissionError):
    """Raised when a chat belongs to another user."""


class ChatNotFoundError(LookupError):
    """Raised when a chat does not exist (yet)."""


class InsufficientCreditsError(Exception):
    """Raised when the user has no credit left to pay for a turn."""


class UnknownModelError(LookupError):
    """Raised when the requested model id is not in the catalog."""


class ModelUnavailableError(RuntimeError):
    """Raised when a catalog model cannot be constructed (e.g. missing API key)."""


class DocumentNotFoundError(LookupError):
    """Raised when an artifact document has no saved versions."""


class VersionNotFoundError(LookupError):
    """Raised when a requested document version index does not exist."""


class UnsupportedDocumentKindError(ValueError):
    """Raised when no handler is registered for a document kind."""
