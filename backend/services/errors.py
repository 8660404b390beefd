"""Reasons a relationship command can be rejected"""


class FriendshipError(Exception):
    code = "friendship_error"
    status_code = 400
    message = "The operation was rejected."
    # only these are worth retrying from the caller side
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> dict:
        return {"code": self.code, "message": str(self)}


class InvalidToken(FriendshipError):
    code = "invalid_token"
    status_code = 401
    message = "Invalid or expired token."


class SelfReference(FriendshipError):
    code = "self_reference"
    message = "You cannot befriend yourself."


class UnknownTarget(FriendshipError):
    code = "unknown_target"
    status_code = 404
    message = "User not found."


class AlreadyFriends(FriendshipError):
    code = "already_friends"
    status_code = 409
    message = "You are already friends."


class RequestExists(FriendshipError):
    """The request is already pending: safe to treat as a success."""

    code = "request_exists"
    status_code = 409
    message = "A request is already pending."


class NoPendingRequest(FriendshipError):
    code = "no_pending_request"
    status_code = 409
    message = "No pending request."


class NoOutgoingRequest(FriendshipError):
    code = "no_outgoing_request"
    status_code = 409
    message = "No outgoing request."


class NotFriends(FriendshipError):
    code = "not_friends"
    status_code = 409
    message = "You are not friends."


class ConcurrencyExhausted(FriendshipError):
    code = "concurrency_exhausted"
    status_code = 503
    message = "Too many concurrent updates, please retry."
    retryable = True


class StoreUnavailable(FriendshipError):
    code = "store_unavailable"
    status_code = 503
    message = "Service temporarily unavailable."
    retryable = True


class DirectoryUnavailable(FriendshipError):
    code = "directory_unavailable"
    status_code = 502
    message = "User directory temporarily unavailable."
    retryable = True


class WriteConflict(Exception):
    """A conditional write lost against a concurrent one."""

    def __init__(self, key, expected: int | None = None):
        self.key = key
        self.expected = expected
        super().__init__(f"Conflicting write on {key} (expected revision {expected})")


class LockTimeout(Exception):
    """The in-process locks of a command could not be taken in time."""

    def __init__(self, keys: int, timeout: float):
        self.keys = keys
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for {keys} locks")
