import logging
from collections.abc import Callable, Iterable

from fastapi import Request

from app.evstock.core.config import settings
from app.evstock.core.logging import log_json

logger = logging.getLogger("evstock.notifications")

Subscriber = Callable[[str, str, dict], None]


def emv_staff_room(company_id) -> str:
    return f"emv_staff_{company_id}"


def parts_coordinator_company_room(company_id) -> str:
    return f"parts_coordinator_company_{company_id}"


def service_center_staff_room(service_center_id) -> str:
    return f"service_center_staff_{service_center_id}"


def service_center_manager_room(service_center_id) -> str:
    return f"service_center_manager_{service_center_id}"


def parts_coordinator_service_center_room(service_center_id) -> str:
    return f"parts_coordinator_service_center_{service_center_id}"


class NotificationHub:
    """In-process fan-out of room events to transport adapters (socket server, queue, test recorder)."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, room: str, event: str, payload: dict) -> int:
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                subscriber(room, event, payload)
                delivered += 1
            except Exception:
                logger.exception("Notification subscriber failed", extra={"room": room, "event": event})
        return delivered


class NotificationService:
    """Fire-and-forget room notifications; never raises into the caller."""

    def __init__(self, hub: NotificationHub, *, enabled: bool | None = None) -> None:
        self.hub = hub
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled

    def send_to_room(self, room: str, event: str, payload: dict) -> None:
        if not self.enabled or not room:
            return
        try:
            delivered = self.hub.publish(room, event, payload)
        except Exception:
            logger.exception("Failed to publish notification", extra={"room": room, "event": event})
            return
        log_json(
            logger,
            {
                "event": "notification_sent",
                "room": room,
                "notification": event,
                "payload": payload,
                "subscribers": delivered,
            },
        )

    def send_to_rooms(self, rooms: Iterable[str], event: str, payload: dict) -> None:
        for room in dict.fromkeys(rooms):
            self.send_to_room(room, event, payload)


def get_notification_service(request: Request) -> NotificationService:
    hub = getattr(request.app.state, "notification_hub", None)
    if hub is None:
        hub = NotificationHub()
        request.app.state.notification_hub = hub
    return NotificationService(hub)
