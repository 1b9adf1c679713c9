"""Notification Service: best-effort delivery with a time bound.

A notification never fails or delays the operation that caused it beyond
``timeout`` seconds: services call ``send`` only after their transaction
has committed, and every dispatcher failure is logged and dropped here.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from safe_transfer.logging_config import get_logger

if TYPE_CHECKING:
    from safe_transfer.domain.ports import NotificationDispatcher, NotificationOutcome, PartyInfo

logger = get_logger(__name__)

PREVIEW_LENGTH = 100


def preview(text: str) -> str:
    """First 100 characters, with "..." appended when the text was longer."""
    if len(text) <= PREVIEW_LENGTH:
        return text
    return f"{text[:PREVIEW_LENGTH]}..."


class NotificationService:
    def __init__(self, dispatcher: NotificationDispatcher, timeout: float = 5.0) -> None:
        self._dispatcher = dispatcher
        self._timeout = timeout

    async def send(self, party: PartyInfo | None, message: str, event: str = "notification") -> NotificationOutcome | None:
        """Deliver ``message`` to ``party``; returns None when delivery failed."""
        if party is None:
            logger.warning("notification.skipped", notification_event=event, reason="unknown party")
            return None
        try:
            outcome = await asyncio.wait_for(self._dispatcher.notify(party, message), timeout=self._timeout)
        except TimeoutError:
            logger.warning("notification.timeout", notification_event=event, party_id=party.id, timeout=self._timeout)
            return None
        except Exception as exc:
            logger.warning(
                "notification.failed", notification_event=event, party_id=party.id, error=str(exc), exc_info=True
            )
            return None
        logger.debug("notification.sent", notification_event=event, party_id=party.id, delivered=outcome.delivered)
        return outcome
