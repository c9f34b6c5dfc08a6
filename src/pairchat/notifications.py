"""
Notification gate and local notifier.

should_notify() is the pure decision. Notifier turns a positive decision
into a sound cue plus a system notification, the latter only when the user
has granted permission.
"""

import logging
from abc import ABC, abstractmethod
from typing import Literal, Optional

from pairchat.models.events import ChangeKind
from pairchat.models.message import ChangeEvent
from pairchat.participants import ParticipantRegistry

logger = logging.getLogger("pairchat.notifications")

NotificationPermission = Literal["granted", "denied", "default"]
NOTIFICATION_TAG = "new-message"


def should_notify(event: ChangeEvent, participant: str, foreground: bool) -> bool:
    return (
        event.kind == ChangeKind.INSERT
        and event.row.sender != participant
        and not foreground
    )


class NotificationBackend(ABC):
    """Local notification API of the host platform."""

    @abstractmethod
    async def request_permission(self) -> NotificationPermission:
        pass

    @abstractmethod
    def permission(self) -> NotificationPermission:
        pass

    @abstractmethod
    def notify(self, title: str, body: str, icon: str, tag: str) -> None:
        pass

    def play_sound(self) -> None:
        """Play the new-message cue. Silent by default."""


class Notifier:
    def __init__(self, backend: NotificationBackend, registry: ParticipantRegistry):
        self._backend = backend
        self._registry = registry
        self._permission: NotificationPermission = backend.permission()

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    async def request_permission(self) -> NotificationPermission:
        self._permission = await self._backend.request_permission()
        return self._permission

    def dispatch(self, event: ChangeEvent) -> Optional[str]:
        """Alert for an incoming message. Returns the notification title if one was shown."""
        row = event.row
        try:
            self._backend.play_sound()
        except Exception as e:
            logger.error(f"Error playing sound: {e}")

        if self._permission != "granted":
            logger.warning("Notification permission not granted.")
            return None
        title = f"New message from {row.sender}"
        try:
            self._backend.notify(title, row.message, self._registry.avatar_for(row.sender), NOTIFICATION_TAG)
        except Exception as e:
            logger.error(f"Error showing notification: {e}")
            return None
        return title
