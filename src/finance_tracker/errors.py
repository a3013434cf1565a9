from __future__ import annotations


class TrackerError(RuntimeError):
    pass


class WriteError(TrackerError):
    """append() failed; the caller keeps the draft so it can be retried."""


class FeedError(TrackerError):
    """
    Live feed failure. retryable=False means the feed has stopped
    (revoked auth, permission denied) and will not reconnect on its own.
    """

    def __init__(self, message: str, *, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class IdentityError(TrackerError):
    """No user scope could be established; fatal for the session."""
