"""
Error Types for the Chat Client

This module defines the exception taxonomy used by the room session and
message reconciliation layer. Nothing here is fatal to the process; the
worst outcome is a degraded room view that the user recovers from by
selecting the room again.
"""


class ChatClientError(Exception):
    """Base class for all chat client errors."""


class AuthRejected(ChatClientError):
    """The bearer credential was refused by the REST API or the channel."""


class HistoryUnavailable(ChatClientError):
    """
    Room history could not be fetched.

    The room controller recovers from this by continuing with live
    messaging only and showing a degraded placeholder.
    """


class RequestFailed(ChatClientError):
    """
    A REST room operation (create room, invites, signup) failed.

    Attributes:
        status: HTTP status code, or None for transport errors
    """

    def __init__(self, message: str, status=None):
        super().__init__(message)
        self.status = status


class ChannelError(ChatClientError):
    """Transport-level failure of the live message channel."""


class ChannelHandshakeFailed(ChannelError):
    """The channel CONNECT or SUBSCRIBE handshake did not complete."""


class ReconciliationMiss(ChatClientError):
    """
    An edit or delete referenced an identity that is not in the cache.

    Only used for diagnostics; the cache absorbs misses silently.
    """


class InvalidMessage(ChatClientError, ValueError):
    """A message carries neither a durable id nor a timestamp."""
