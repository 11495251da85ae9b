"""
Display Identity Resolution

Every displayed message is keyed by exactly one display identity:
`DurableIdentity` when the server assigned a persistent id, otherwise
`SurrogateIdentity` derived from the send timestamp.

A message inserted under a surrogate identity is never merged with a
later event carrying a durable id for the same logical message; the two
are distinct identities unless the later event repeats the timestamp
and omits the id.
"""

from dataclasses import dataclass
from typing import Any, Union

from .errors import InvalidMessage
from .schemas.message import Message, normalize_timestamp


@dataclass(frozen=True)
class DurableIdentity:
    """Identity backed by a server-assigned message id."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SurrogateIdentity:
    """Identity derived from a message's send timestamp."""

    timestamp: Any

    def __str__(self) -> str:
        return f"@{self.timestamp}"


DisplayIdentity = Union[DurableIdentity, SurrogateIdentity]


def durable(message_id: Any) -> DurableIdentity:
    """Build a durable identity; ids compare as strings so 42 == "42"."""
    return DurableIdentity(str(message_id))


def resolve(message: Message) -> DisplayIdentity:
    """
    Compute the display identity of a message.

    Args:
        message: Message from history or from a channel event

    Returns:
        DurableIdentity if the message has a durable id, otherwise
        SurrogateIdentity of its send timestamp.

    Raises:
        InvalidMessage: If the message has neither, or its timestamp
                        cannot key the cache.
    """
    if message.durable_id is not None and message.durable_id != "":
        return durable(message.durable_id)
    if message.sent_at is not None and message.sent_at != "":
        timestamp = normalize_timestamp(message.sent_at)
        try:
            hash(timestamp)
        except TypeError as e:
            raise InvalidMessage(
                f"Message from {message.author!r} has an unusable timestamp: "
                f"{message.sent_at!r}"
            ) from e
        return SurrogateIdentity(timestamp)
    raise InvalidMessage(
        f"Message from {message.author!r} has neither an id nor a timestamp"
    )


def parse_identity(text: str) -> DisplayIdentity:
    """
    Parse an identity typed by the user.

    `@<timestamp>` selects a surrogate identity; anything else is a
    durable id.
    """
    text = text.strip()
    if not text:
        raise ValueError("Message identity must not be empty")
    if text.startswith("@"):
        return SurrogateIdentity(text[1:])
    return durable(text)
