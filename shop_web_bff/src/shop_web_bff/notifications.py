# src/shop_web_bff/notifications.py

import logging
from typing import List, Literal

from pydantic import BaseModel

from .session_data import NOTIFICATIONS_KEY

logger = logging.getLogger(__name__)

# Oldest toasts are dropped once an undrained queue reaches this size
MAX_QUEUED_NOTIFICATIONS = 20

NotificationKind = Literal["success", "error", "info", "warning"]


class Notification(BaseModel):
    kind: NotificationKind
    message: str


class SessionNotificationSink:
    """
    Queues toast notifications in the server-side session.
    The web client picks them up from /api/bff/notifications and renders them.
    """

    def __init__(self, session: dict):
        self._session = session

    def show(self, notification: Notification) -> None:
        logger.debug("Queueing %s notification: %s", notification.kind, notification.message)
        queued = self._session.setdefault(NOTIFICATIONS_KEY, [])
        queued.append(notification.model_dump())
        del queued[:-MAX_QUEUED_NOTIFICATIONS]

    def drain(self) -> List[Notification]:
        queued = self._session.pop(NOTIFICATIONS_KEY, [])
        return [Notification(**item) for item in queued]
