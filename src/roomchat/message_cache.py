"""
Message Cache for the Active Room

This module provides the ordered store of messages currently displayed
for the active room. Entries are keyed by display identity and keep
their insertion order: history is seeded in server order and live
messages are appended.

Architecture:
    - OrderedDict keyed by display identity (O(1) lookup, stable order)
    - Edits update an entry in place, deletes remove it
    - Duplicate deliveries of a created message are ignored
    - Limits cache size to prevent memory exhaustion

Usage:
    cache = MessageCache()
    cache.seed(history)
    change = cache.apply(message, MessageKind.CREATED)
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional

from .identity import DisplayIdentity, resolve
from .errors import InvalidMessage, ReconciliationMiss
from .schemas.message import Message, MessageKind

logger = logging.getLogger(__name__)

# Maximum number of messages to keep for the active room
DEFAULT_MAX_ENTRIES = 1000


class ChangeType(Enum):
    """Effect an applied event had on the cache."""

    INSERTED = "inserted"
    UPDATED = "updated"
    REMOVED = "removed"
    IGNORED = "ignored"


@dataclass
class CacheChange:
    """
    Result of applying one event, used to render only what changed.

    Attributes:
        change: What happened to the cache
        identity: Identity of the affected entry
        message: The inserted or updated entry (None for removals)
        evicted: Identities dropped to stay within the size limit
    """

    change: ChangeType
    identity: DisplayIdentity
    message: Optional[Message] = None
    evicted: List[DisplayIdentity] = field(default_factory=list)


class MessageCache:
    """
    Ordered, identity-indexed store of displayed messages.

    After any sequence of operations no two entries share a display
    identity.

    Attributes:
        max_entries: Maximum number of entries; the oldest are evicted
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        """
        Initialize an empty cache.

        Args:
            max_entries: Maximum number of messages to keep. Oldest
                         messages are evicted when exceeded.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: "OrderedDict[DisplayIdentity, Message]" = OrderedDict()

    def seed(self, history: Iterable[Message]) -> List[Message]:
        """
        Replace all entries with a room's history.

        History is expected in server order (ascending send time) and is
        not re-sorted. Messages without a resolvable identity and repeated
        identities are skipped.

        Args:
            history: Messages in server order

        Returns:
            The seeded entries in display order.
        """
        self._entries.clear()
        for message in history:
            try:
                identity = resolve(message)
            except InvalidMessage as e:
                logger.warning("Skipping history entry: %s", e)
                continue
            if identity in self._entries:
                logger.debug("Skipping repeated history entry: %s", identity)
                continue
            self._entries[identity] = replace(message, kind=MessageKind.CREATED)

        evicted = self._enforce_limit()
        if evicted:
            logger.debug("History exceeded cache size, kept newest entries")
        return self.messages()

    def apply(
        self, message: Message, kind: Optional[MessageKind] = None
    ) -> CacheChange:
        """
        Reconcile one inbound event against the cache.

        Args:
            message: Event payload
            kind: Change to apply (defaults to the message's own kind)

        Returns:
            CacheChange describing the effect.

        Raises:
            InvalidMessage: If the event has no resolvable identity.
        """
        kind = kind or message.kind
        identity = resolve(message)

        if kind is MessageKind.CREATED:
            if identity in self._entries:
                logger.debug("Duplicate delivery ignored: %s", identity)
                return CacheChange(ChangeType.IGNORED, identity)
            return self._insert(identity, message, edited=message.edited)

        if kind is MessageKind.EDITED:
            entry = self._entries.get(identity)
            if entry is None:
                self._log_miss(identity, kind)
                # Shown as a new message
                return self._insert(identity, message, edited=True)
            entry.content = message.content
            entry.edited = True
            return CacheChange(ChangeType.UPDATED, identity, entry)

        if kind is MessageKind.DELETED:
            if self._entries.pop(identity, None) is None:
                self._log_miss(identity, kind)
                return CacheChange(ChangeType.IGNORED, identity)
            return CacheChange(ChangeType.REMOVED, identity)

        raise ValueError(f"Unknown message kind: {kind!r}")

    def clear(self) -> None:
        """
        Drop all entries.

        This should be called when switching rooms or tearing down the
        session.
        """
        self._entries.clear()
        logger.debug("Message cache cleared")

    def get(self, identity: DisplayIdentity) -> Optional[Message]:
        """Return the entry for an identity, or None."""
        return self._entries.get(identity)

    def messages(self) -> List[Message]:
        """Return the entries in display order."""
        return list(self._entries.values())

    def identities(self) -> List[DisplayIdentity]:
        """Return the entry identities in display order."""
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def _insert(
        self, identity: DisplayIdentity, message: Message, edited: bool
    ) -> CacheChange:
        entry = replace(message, kind=MessageKind.CREATED, edited=edited)
        self._entries[identity] = entry
        evicted = self._enforce_limit()
        return CacheChange(ChangeType.INSERTED, identity, entry, evicted)

    def _enforce_limit(self) -> List[DisplayIdentity]:
        """
        Remove oldest entries if the cache exceeds its maximum size.

        Returns:
            Identities of the evicted entries, oldest first.
        """
        evicted: List[DisplayIdentity] = []
        while len(self._entries) > self.max_entries:
            identity, _ = self._entries.popitem(last=False)
            evicted.append(identity)
        if evicted:
            logger.warning(
                "Cache limit exceeded, removed %s oldest messages", len(evicted)
            )
        return evicted

    @staticmethod
    def _log_miss(identity: DisplayIdentity, kind: MessageKind) -> None:
        logger.debug(
            "%s",
            ReconciliationMiss(
                f"{kind.value} event for unknown message {identity}"
            ),
        )
