"""Best-effort completion notices; delivery transport is pluggable."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

NOTIFICATION_TITLES: dict[str, str] = {
    "analyze_resume": "Resume Analysis Complete",
    "optimize_resume": "Resume Optimized",
    "add_skill": "Skills Added",
    "prep_guide": "Interview Prep Guide Ready",
    "cover_letter": "Cover Letter Generated",
}


@dataclass(slots=True)
class Notification:
    user_id: str
    kind: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


class Notifier(Protocol):
    def send(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Default transport: writes the notice to the log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "Notify %s: %s - %s",
            notification.user_id,
            notification.title,
            notification.body,
        )


def build_notification(
    *,
    user_id: str,
    kind: str,
    subject: str,
    resource_id: str | None = None,
) -> Notification:
    title = NOTIFICATION_TITLES.get(kind, "Task Complete")
    data = {"kind": kind}
    if resource_id:
        data["resource_id"] = resource_id
    return Notification(
        user_id=user_id,
        kind=kind,
        title=title,
        body=f"Your {subject} is ready.",
        data=data,
    )


def notify_completion(notifier: Notifier | None, notification: Notification) -> bool:
    """Send a notice; any transport error is logged and swallowed."""

    if notifier is None:
        return False
    try:
        notifier.send(notification)
    except Exception:  # noqa: BLE001
        logger.warning(
            "Failed to send %s notification to %s",
            notification.kind,
            notification.user_id,
            exc_info=True,
        )
        return False
    return True
