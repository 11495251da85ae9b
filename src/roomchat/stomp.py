"""
STOMP Frames for the Message Channel

This module defines the STOMP 1.2 frame structure carried over the
WebSocket connection to the chat server.

Frame Format:
    COMMAND
    header1:value1
    header2:value2

    body^@

Heart-beats are bare end-of-line characters between frames and decode
to None.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

NULL = "\x00"

# Commands whose headers are not escaped (STOMP 1.2)
_UNESCAPED_COMMANDS = ("CONNECT", "CONNECTED")

_ESCAPES = (("\\", "\\\\"), ("\r", "\\r"), ("\n", "\\n"), (":", "\\c"))
_UNESCAPES = {"\\\\": "\\", "\\r": "\r", "\\n": "\n", "\\c": ":"}


class FrameError(ValueError):
    """Raised when a frame cannot be decoded."""


@dataclass
class Frame:
    """
    A single STOMP frame.

    Attributes:
        command: Frame command (CONNECT, SEND, MESSAGE, ...)
        headers: Frame headers (first occurrence wins on decode)
        body: Frame body text
    """

    command: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def encode(self) -> str:
        """
        Convert to wire text.

        Returns:
            Frame text terminated by the NULL octet.
        """
        escape = self.command not in _UNESCAPED_COMMANDS
        lines = [self.command]
        for key, value in self.headers.items():
            if escape:
                key, value = _escape(key), _escape(str(value))
            lines.append(f"{key}:{value}")
        return "\n".join(lines) + "\n\n" + self.body + NULL

    @classmethod
    def decode(cls, text: str) -> Optional["Frame"]:
        """
        Create a frame from wire text.

        Args:
            text: One frame as received from the WebSocket

        Returns:
            The decoded frame, or None for a heart-beat.

        Raises:
            FrameError: If the text is not a well-formed frame.
        """
        text = text.lstrip("\r\n")
        if not text or text == NULL:
            return None

        head, sep, rest = text.partition("\n\n")
        if not sep:
            head, sep, rest = text.partition("\r\n\r\n")
        if not sep:
            raise FrameError("Frame has no header terminator")

        lines = head.replace("\r\n", "\n").split("\n")
        command = lines[0].strip()
        if not command:
            raise FrameError("Frame has no command")

        unescape = command not in _UNESCAPED_COMMANDS
        headers: Dict[str, str] = {}
        for line in lines[1:]:
            if not line:
                continue
            key, colon, value = line.partition(":")
            if not colon:
                raise FrameError(f"Malformed header line: {line!r}")
            if unescape:
                key, value = _unescape(key), _unescape(value)
            headers.setdefault(key, value)

        length = headers.get("content-length")
        if length is not None and length.isdigit():
            # content-length counts octets, not characters
            body = rest.encode("utf-8")[: int(length)].decode(
                "utf-8", errors="replace"
            )
        else:
            body, _, _ = rest.partition(NULL)
        return cls(command=command, headers=headers, body=body)


def connect_frame(host: str, authorization: str) -> Frame:
    """Build the CONNECT frame that authenticates the channel."""
    return Frame(
        "CONNECT",
        {
            "accept-version": "1.2",
            "host": host,
            "heart-beat": "0,0",
            "Authorization": authorization,
        },
    )


def subscribe_frame(subscription_id: str, destination: str) -> Frame:
    """Build a SUBSCRIBE frame."""
    return Frame(
        "SUBSCRIBE",
        {"id": subscription_id, "destination": destination, "ack": "auto"},
    )


def unsubscribe_frame(subscription_id: str) -> Frame:
    """Build an UNSUBSCRIBE frame."""
    return Frame("UNSUBSCRIBE", {"id": subscription_id})


def send_frame(destination: str, body: str) -> Frame:
    """Build a SEND frame with a JSON body."""
    return Frame(
        "SEND",
        {"destination": destination, "content-type": "application/json"},
        body,
    )


def disconnect_frame() -> Frame:
    """Build a DISCONNECT frame."""
    return Frame("DISCONNECT")


def _escape(value: str) -> str:
    for raw, escaped in _ESCAPES:
        value = value.replace(raw, escaped)
    return value


def _unescape(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        pair = value[i : i + 2]
        if pair in _UNESCAPES:
            out.append(_UNESCAPES[pair])
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)
