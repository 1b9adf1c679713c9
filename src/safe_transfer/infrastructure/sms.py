"""Development SMS dispatcher.

Real SMS delivery is out of scope; this dispatcher formats the number the
way a gateway would (+91 prefix) and logs the message instead of sending
it, returning a ``dev-<epoch ms>`` message id.
"""

from __future__ import annotations

import time

from safe_transfer.domain.exceptions import NotificationError
from safe_transfer.domain.ports import NotificationOutcome, PartyInfo
from safe_transfer.logging_config import get_logger

logger = get_logger(__name__)


def format_phone(phone: str) -> str:
    return phone if phone.startswith("+91") else f"+91{phone}"


class DevSmsDispatcher:
    async def notify(self, party: PartyInfo, message: str) -> NotificationOutcome:
        if not party.phone:
            raise NotificationError(f"Party {party.id} has no phone number")
        message_id = f"dev-{int(time.time() * 1000)}"
        logger.info(
            "sms.sent",
            to=format_phone(party.phone),
            message=message,
            message_id=message_id,
            mode="development",
        )
        return NotificationOutcome(delivered=True, message_id=message_id)
