from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


logger = logging.getLogger(__name__)


class Severity(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


@dataclass(frozen=True)
class Notification:
    severity: Severity
    title: str
    message: str = ""


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


_LEVELS = {
    Severity.info: logging.INFO,
    Severity.success: logging.INFO,
    Severity.warning: logging.WARNING,
    Severity.error: logging.ERROR,
}


class LoggingNotifier:
    def notify(self, notification: Notification) -> None:
        logger.log(_LEVELS[notification.severity], "%s: %s", notification.title, notification.message)


class NotificationLog:
    """Keeps every notification in order; handy for front ends that poll and for tests."""

    def __init__(self) -> None:
        self.items: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.items.append(notification)

    def titles(self, severity: Severity | None = None) -> list[str]:
        return [n.title for n in self.items if severity is None or n.severity is severity]

    def clear(self) -> None:
        self.items.clear()


def notify(notifier: Notifier | None, severity: Severity, title: str, message: str = "") -> None:
    if notifier is None:
        return
    notifier.notify(Notification(severity=severity, title=title, message=message))
