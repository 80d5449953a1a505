"""Process-lifetime bot state: start time, greeted guests, remote folder cache.

Nothing here is persisted except the folder cache (see storage.folders):
a restarted bot greets every guest again and only admits media captured
after the new start time.

Designed for single-event-loop asyncio. ``GuestNotificationTracker.claim``
checks and marks without an ``await`` in between, so two media messages
from the same new guest handled concurrently produce one acknowledgment.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from loguru import logger

from weddingbot.storage.folders import FolderCache


class GuestNotificationTracker:
    """Remembers which senders already received the welcome acknowledgment."""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self._notified: set[str] = set()

    def should_notify(self, sender_id: str, is_operator: bool) -> bool:
        """True when ``sender_id`` is a guest that has not been greeted yet."""
        if not self._enabled or is_operator:
            return False
        return sender_id not in self._notified

    def mark_notified(self, sender_id: str) -> None:
        self._notified.add(sender_id)
        logger.trace("Guest {} marked as notified ({} total)", sender_id, len(self._notified))

    def claim(self, sender_id: str, is_operator: bool) -> bool:
        """Atomic should_notify + mark_notified.

        The sender is marked even when no acknowledgment is due (operator,
        notifications disabled) so later messages take the "already seen" path.
        """
        first_time = sender_id not in self._notified
        notify = self.should_notify(sender_id, is_operator)
        self.mark_notified(sender_id)
        if not first_time:
            logger.debug("Sender {} already seen - no acknowledgment", sender_id)
        return notify

    def has_notified(self, sender_id: str) -> bool:
        return sender_id in self._notified


@dataclass
class BotSession:
    """State owned by the running bot for its whole lifetime."""

    start_time: float = field(default_factory=time.time)
    notifications: GuestNotificationTracker = field(default_factory=GuestNotificationTracker)
    folders: FolderCache = field(default_factory=FolderCache)

    @classmethod
    def start(
        cls,
        notifications_enabled: bool = True,
        folders: FolderCache | None = None,
    ) -> "BotSession":
        """Open a session whose recency gate starts now."""
        session = cls(
            notifications=GuestNotificationTracker(enabled=notifications_enabled),
            folders=folders or FolderCache(),
        )
        logger.info(
            "Bot session started at {}; only media captured after this moment is synced",
            time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(session.start_time)),
        )
        return session
