"""Error types for the chat client.

Every failure is recovered at the boundary where it happens; these types let
callers tell the cases apart when they need to show a notice.
"""


class ChatError(Exception):
    """Base class for chat client errors."""


class TransportFailure(ChatError):
    """The transport could not be established, was lost, or rejected a write."""


class NotConnected(ChatError):
    """A send was attempted while the session is not connected."""

    def __init__(self, message: str = "You must be connected to chat to send messages"):
        super().__init__(message)


class NotAuthenticated(ChatError):
    """A send was attempted without an authenticated identity."""

    def __init__(self, message: str = "You must be logged in to send messages"):
        super().__init__(message)


class NotAuthorized(ChatError):
    """A moderator-only action was attempted by a regular viewer."""

    def __init__(self, message: str = "You must be a moderator to perform this action"):
        super().__init__(message)


class RemoteFetchFailure(ChatError):
    """A remote request (catalog, search, history, metadata) failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class PersistenceFailure(ChatError):
    """Local storage could not be read or written."""
