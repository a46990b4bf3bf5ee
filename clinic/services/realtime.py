import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

# Channel names
NOTIFICATIONS_CHANNEL = "notifications"
APPOINTMENTS_CHANNEL = "appointments"

# Event names
NEW_NOTIFICATION = "new-notification"
APPOINTMENT_CREATED = "appointment-created"
APPOINTMENT_UPDATED = "appointment-updated"


class RealtimeClient:
    """Publishes events to the real-time gateway over HTTP."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.REALTIME_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.REALTIME_TIMEOUT_SECONDS

    async def trigger(self, channel: str, event: str, data: Dict[str, Any]) -> bool:
        if not self.url:
            logger.debug(f"Real-time gateway not configured, dropping {channel}/{event}")
            return False

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.url,
                json={"channel": channel, "event": event, "data": data},
            )
            response.raise_for_status()

        logger.info(f"Real-time event {channel}/{event} published")
        return True

    async def trigger_notification(self, user_id: int, title: str, message: str, kind: str = "GENERAL") -> bool:
        notification = {
            "id": f"{kind.lower()}-{int(datetime.utcnow().timestamp() * 1000)}",
            "type": kind,
            "title": title,
            "message": message,
            "createdAt": datetime.utcnow().isoformat(),
        }
        return await self.trigger(
            NOTIFICATIONS_CHANNEL, NEW_NOTIFICATION,
            {"userId": user_id, "notification": notification},
        )

    async def trigger_appointment_update(self, appointment: Dict[str, Any]) -> bool:
        return await self.trigger(APPOINTMENTS_CHANNEL, APPOINTMENT_UPDATED, {"appointment": appointment})

    async def trigger_new_appointment(self, appointment: Dict[str, Any]) -> bool:
        return await self.trigger(APPOINTMENTS_CHANNEL, APPOINTMENT_CREATED, {"appointment": appointment})
