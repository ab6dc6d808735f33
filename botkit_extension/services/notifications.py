"""Transient toast notifications for the license page.

The channel is bound to one asyncio event loop between ``open()`` and
``close()``. Every entry owns a single dismissal timer; dismissing by hand
cancels that timer, so an entry is removed exactly once.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MS = 5000


class Severity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class SeverityStyle:
    icon: str
    css_class: str


SEVERITY_STYLES: dict[Severity, SeverityStyle] = {
    Severity.SUCCESS: SeverityStyle(icon="yes-alt", css_class="ai-botkit-toast-success"),
    Severity.ERROR: SeverityStyle(icon="dismiss", css_class="ai-botkit-toast-error"),
    Severity.WARNING: SeverityStyle(icon="warning", css_class="ai-botkit-toast-warning"),
    Severity.INFO: SeverityStyle(icon="info", css_class="ai-botkit-toast-info"),
}


class NotificationState(str, Enum):
    CREATED = "created"
    VISIBLE = "visible"
    DISMISSING = "dismissing"
    REMOVED = "removed"


@dataclass(eq=False)
class Notification:
    id: int
    message: str
    severity: Severity
    duration_ms: int
    state: NotificationState = NotificationState.CREATED
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def style(self) -> SeverityStyle:
        return SEVERITY_STYLES[self.severity]


class NotificationChannel:
    def __init__(self) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None
        self._entries: list[Notification] = []
        self._ids = itertools.count(1)

    @property
    def is_open(self) -> bool:
        return self._loop is not None

    def open(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._loop is not None:
            raise RuntimeError("notification channel is already open")
        self._loop = loop or asyncio.get_running_loop()

    def close(self) -> None:
        for entry in list(self._entries):
            self.dismiss(entry)
        self._loop = None

    def __enter__(self) -> "NotificationChannel":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def notify(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        duration_ms: int = DEFAULT_DURATION_MS,
    ) -> Notification:
        if self._loop is None:
            raise RuntimeError("notification channel is not open")

        entry = Notification(id=next(self._ids), message=message, severity=Severity(severity), duration_ms=duration_ms)
        self._entries.append(entry)
        entry.state = NotificationState.VISIBLE
        entry._timer = self._loop.call_later(duration_ms / 1000, self._expire, entry)
        logger.debug("notification_shown", extra={"notification_id": entry.id, "severity": entry.severity.value})
        return entry

    def dismiss(self, handle: Notification) -> bool:
        """Remove ``handle`` from the display list. Returns False if it was already gone."""
        if handle.state in (NotificationState.DISMISSING, NotificationState.REMOVED):
            return False

        handle.state = NotificationState.DISMISSING
        if handle._timer is not None:
            handle._timer.cancel()
            handle._timer = None
        if handle in self._entries:
            self._entries.remove(handle)
        handle.state = NotificationState.REMOVED
        return True

    def visible(self) -> list[Notification]:
        return list(self._entries)

    def _expire(self, entry: Notification) -> None:
        entry._timer = None
        self.dismiss(entry)
