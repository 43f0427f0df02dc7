"""Notification producers for review and progression events.

Events are collected while a submission operation runs and published only
after its transaction commits. Delivery is best effort: a failing sink is
logged and never fails the operation that produced the event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol
from uuid import UUID

from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Template registry
# ---------------------------------------------------------------------------
# Each entry is keyed by event_type and holds:
#   (title_template, notification_type, priority)

NOTIFICATION_TEMPLATES: dict[str, tuple[str, str, str]] = {
    "submission.approved": (
        "Your {challenge_name} submission was approved{tier_suffix}",
        "review",
        "normal",
    ),
    "submission.rejected": (
        "Your {challenge_name} submission was rejected",
        "review",
        "high",
    ),
    "submission.needs_revision": (
        "Your {challenge_name} submission needs changes",
        "review",
        "high",
    ),
    "submission.reopened": (
        "Your {challenge_name} submission is back under review",
        "review",
        "normal",
    ),
    "progress.level_up": (
        "Level up! You reached {level_label}",
        "progression",
        "normal",
    ),
    "rank.unlocked": (
        "Rank unlocked: {rank_name}",
        "progression",
        "normal",
    ),
    "rank.revoked": (
        "Rank no longer held: {rank_name}",
        "progression",
        "low",
    ),
}


@dataclass(frozen=True)
class NotificationEvent:
    """An event waiting to be published once its transaction commits."""

    event_type: str
    recipients: tuple[UUID, ...]
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Notification:
    recipient_id: UUID
    notification_type: str
    priority: str
    title: str
    body: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    """Anything that can deliver a rendered notification."""

    async def deliver(self, notification: Notification) -> None: ...


class LoggingSink:
    """Default sink: writes notifications to the structured log."""

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            "notification_delivered",
            recipient_id=str(notification.recipient_id),
            notification_type=notification.notification_type,
            priority=notification.priority,
            title=notification.title,
        )


class NotificationProducer:
    """Renders events through the template registry and hands them to a sink."""

    def __init__(self, sink: NotificationSink | None = None) -> None:
        self.sink = sink or LoggingSink()

    async def publish(self, events: Iterable[NotificationEvent]) -> None:
        for event in events:
            await self.handle_event(event.event_type, event.recipients, event.data)

    async def handle_event(
        self,
        event_type: str,
        recipients: Iterable[UUID],
        data: dict[str, Any],
    ) -> None:
        """Render one event and deliver it to each recipient.

        Args:
            event_type: Dot-separated event identifier (e.g. ``rank.unlocked``)
            recipients: User ids to notify; duplicates are delivered once
            data: Event payload used to fill the title template
        """
        template = NOTIFICATION_TEMPLATES.get(event_type)
        if template is None:
            logger.debug("no_notification_template", event_type=event_type)
            return

        title_template, notification_type, priority = template
        title = title_template.format_map(_SafeFormatDict(data))

        # The user who caused the event is not notified about it
        originator = data.get("originator_id")
        targets = list(dict.fromkeys(r for r in recipients if r is not None))
        if originator is not None:
            targets = [r for r in targets if str(r) != str(originator)]
        if not targets:
            logger.debug("no_notification_recipients", event_type=event_type)
            return

        for recipient_id in targets:
            try:
                await self.sink.deliver(
                    Notification(
                        recipient_id=recipient_id,
                        notification_type=notification_type,
                        priority=priority,
                        title=title,
                        body=data.get("body"),
                        data=data,
                    )
                )
            except Exception as e:
                logger.warning(
                    "notification_delivery_failed",
                    recipient_id=str(recipient_id),
                    event_type=event_type,
                    error=str(e),
                )

        logger.info(
            "notifications_produced",
            event_type=event_type,
            recipient_count=len(targets),
        )


class _SafeFormatDict(dict):
    """Leaves ``{key}`` in place when a template key is missing."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


__all__ = [
    "LoggingSink",
    "NOTIFICATION_TEMPLATES",
    "Notification",
    "NotificationEvent",
    "NotificationProducer",
    "NotificationSink",
]
