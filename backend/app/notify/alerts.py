"""Short-lived in-app alerts the UI polls and displays."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from app.models.artifacts import utc_now

logger = logging.getLogger(__name__)

ALERT_LIFETIME = timedelta(seconds=5)
DEFAULT_ICON = "/favicon.ico"


@dataclass
class Alert:
    id: int
    title: str
    body: str
    icon: str = DEFAULT_ICON
    created_at: datetime = field(default_factory=utc_now)
    expires_at: datetime | None = None
    dismissed: bool = False

    def is_active(self, now: datetime) -> bool:
        return not self.dismissed and (self.expires_at is None or now < self.expires_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


class LocalAlertChannel:
    """Alert feed the UI polls. Alerts auto-expire after ``lifetime``.

    Whether the user granted alerts lives on the NotificationTarget; the
    channel only knows whether alerts are supported at all.
    """

    def __init__(self, supported: bool = True, lifetime: timedelta = ALERT_LIFETIME) -> None:
        self.supported = supported
        self.lifetime = lifetime
        self._alerts: list[Alert] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def request_permission(self, granted: bool) -> bool:
        """Effective permission for the user's answer."""
        if not self.supported:
            logger.info("Local alerts not supported in this environment")
            return False
        return granted

    def notify(self, title: str, body: str, icon: str = DEFAULT_ICON) -> Alert | None:
        if not self.supported:
            return None
        now = utc_now()
        with self._lock:
            alert = Alert(
                id=next(self._ids),
                title=title,
                body=body,
                icon=icon,
                created_at=now,
                expires_at=now + self.lifetime,
            )
            self._alerts.append(alert)
            self._prune(now)
        logger.debug("Alert %d: %s", alert.id, title)
        return alert

    def active(self, now: datetime | None = None) -> list[Alert]:
        now = now or utc_now()
        with self._lock:
            self._prune(now)
            return list(self._alerts)

    def dismiss(self, alert_id: int) -> bool:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id and not alert.dismissed:
                    alert.dismissed = True
                    return True
        return False

    def _prune(self, now: datetime) -> None:
        self._alerts = [a for a in self._alerts if a.is_active(now)]
