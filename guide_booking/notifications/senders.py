# guide_booking/notifications/senders.py - Local alert dispatchers

import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests
from django.conf import settings

from .exceptions import PermissionDenied
from .payloads import make_json_safe

logger = logging.getLogger(__name__)

EXPO_TOKEN_RE = re.compile(r"^(Exponent|Expo)PushToken\[[^\]]+\]$")


@dataclass
class AlertResult:
    success: bool
    alert_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data = {"success": self.success}
        if self.success:
            data["notificationId"] = self.alert_id
            data["message"] = "Notification sent successfully"
        else:
            data["error"] = self.error
            data["message"] = "Failed to send notification"
        return data


class BaseAlertDispatcher(ABC):
    """Shows a local alert on the recipient's device"""

    @abstractmethod
    def request_permission(self) -> bool:
        pass

    @abstractmethod
    def show(self, title: str, body: str, data: dict | None = None) -> str:
        """Display an alert immediately and return its id; raises PermissionDenied"""

    def send(self, title: str, body: str, data: dict | None = None) -> AlertResult:
        """show() for callers that must not fail: errors come back in the result"""
        try:
            alert_id = self.show(title, body, data or {})
            return AlertResult(success=True, alert_id=alert_id)
        except Exception as e:  # noqa: BLE001 - alert failures never break the pipeline
            logger.warning(f"Alert '{title}' was not shown: {e}")
            return AlertResult(success=False, error=str(e))


class LoggingAlertDispatcher(BaseAlertDispatcher):
    """Writes alerts to the log; used when no device token is known"""

    def request_permission(self) -> bool:
        return True

    def show(self, title: str, body: str, data: dict | None = None) -> str:
        alert_id = uuid.uuid4().hex
        logger.info(
            "Local alert",
            extra={"alert_id": alert_id, "title": title, "body": body, "data": make_json_safe(data or {})},
        )
        return alert_id


class ExpoPushDispatcher(BaseAlertDispatcher):
    """Alerts through the Expo push service to a single device"""

    def __init__(self, push_token: str, session: requests.Session | None = None):
        self.push_token = push_token or ""
        self.session = session or requests.Session()
        self.url = getattr(settings, "EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
        self.timeout = getattr(settings, "EXPO_PUSH_TIMEOUT", 10)
        self._denied = False

    def request_permission(self) -> bool:
        # A device grants permission by registering a token; the service can revoke it later
        granted = not self._denied and bool(EXPO_TOKEN_RE.match(self.push_token))
        if not granted:
            logger.info("Notification permission not granted")
        return granted

    def _headers(self) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        access_token = getattr(settings, "EXPO_ACCESS_TOKEN", "")
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def show(self, title: str, body: str, data: dict | None = None) -> str:
        if not self.request_permission():
            raise PermissionDenied("Notification permission not granted")

        payload = {
            "to": self.push_token,
            "title": title,
            "body": body,
            "data": make_json_safe(data or {}),
            "sound": "default",
            "priority": "high",
        }
        r = self.session.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
        if r.status_code != 200:
            logger.error("Expo push %s; body=%s", r.status_code, r.text)
        r.raise_for_status()

        ticket = r.json().get("data") or {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}

        if ticket.get("status") != "ok":
            details = ticket.get("details") or {}
            if details.get("error") == "DeviceNotRegistered":
                self._denied = True
                raise PermissionDenied(ticket.get("message") or "Device is not registered for alerts")
            raise RuntimeError(ticket.get("message") or f"Expo push rejected: {ticket}")

        logger.info("Notification scheduled: %s", ticket.get("id"))
        return ticket.get("id") or ""


def get_alert_dispatcher(push_token: str | None = None) -> BaseAlertDispatcher:
    if push_token:
        return ExpoPushDispatcher(push_token)
    return LoggingAlertDispatcher()
