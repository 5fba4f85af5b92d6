"""Notification side-channel

The scheduler emits Notification events; a Notifier decides how (or whether)
they reach the user. Delivery is best effort and never raises.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import requests

from songaday.monitoring.metrics import record_api_call


logger = logging.getLogger(__name__)


class NotificationKind(Enum):
    AUTHORISED = "authorised"
    AUTH_FAILED = "auth_failed"
    USER_LOOKUP_FAILED = "user_lookup_failed"
    PLAYLIST_CREATE_FAILED = "playlist_create_failed"
    FETCH_FAILED = "fetch_failed"
    PUBLISH_FAILED = "publish_failed"
    YEAR_COMPLETE = "year_complete"


@dataclass
class Notification:
    kind: NotificationKind
    user_id: str
    notify_ref: Optional[str]
    message: str


class MessageBuilder:
    """User-facing texts, with a link back to /authorise for failures."""

    def __init__(self, host_url: str, year: int):
        self.host_url = host_url.rstrip("/")
        self.year = year

    def authorise_link(self, notify_ref: Optional[str]) -> str:
        if notify_ref:
            return f"{self.host_url}/authorise?notify={notify_ref}"
        return f"{self.host_url}/authorise"

    def build(self, kind: NotificationKind, user_id: str,
              notify_ref: Optional[str]) -> Notification:
        link = self.authorise_link(notify_ref)
        messages = {
            NotificationKind.AUTHORISED: "Thanks for authorising me :)",
            NotificationKind.AUTH_FAILED:
                f"Looks like there was an authorisation problem :( **Maybe try authorising again?** {link}",
            NotificationKind.USER_LOOKUP_FAILED:
                f"I couldn't find your Spotify id :( **Maybe try authorising again?** {link}",
            NotificationKind.PLAYLIST_CREATE_FAILED:
                f"I couldn't create the playlist :( **Maybe try again?** {link}",
            NotificationKind.FETCH_FAILED:
                f"I couldn't seem to get your recently played tracks :( **Try authorising me again:** {link}",
            NotificationKind.PUBLISH_FAILED:
                f"I couldn't seem to add to your playlist :( **Try authorising me again:** {link}",
            NotificationKind.YEAR_COMPLETE:
                f"It's the end of Song A Day {self.year} - happy new year!",
        }
        return Notification(kind=kind, user_id=user_id, notify_ref=notify_ref,
                            message=messages[kind])


class Notifier:
    """Base notifier: logs every event."""

    def notify(self, notification: Notification) -> None:
        logger.info("%s: [%s] %s", notification.user_id,
                    notification.kind.value, notification.message)


class LogNotifier(Notifier):
    """Used when no delivery channel is configured."""


class WebhookNotifier(Notifier):
    """POSTs events to a webhook, addressed by the user's notify_ref."""

    def __init__(self, webhook_url: str, session: Optional[requests.Session] = None,
                 timeout: int = 10):
        self.webhook_url = webhook_url
        self.session = session or requests.Session()
        self.timeout = timeout

    def notify(self, notification: Notification) -> None:
        super().notify(notification)
        if not notification.notify_ref:
            return

        start = time.monotonic()
        try:
            r = self.session.post(
                self.webhook_url,
                json={
                    "content": notification.message,
                    "user": notification.notify_ref,
                    "kind": notification.kind.value,
                },
                timeout=self.timeout,
            )
            r.raise_for_status()
            record_api_call("webhook", "success", time.monotonic() - start)
        except requests.exceptions.RequestException as e:
            record_api_call("webhook", "error", time.monotonic() - start)
            logger.warning("%s: notification delivery failed: %s",
                           notification.user_id, str(e)[:200])


def build_notifier(webhook_url: Optional[str]) -> Notifier:
    if webhook_url:
        logger.info("✓ Webhook notifications enabled")
        return WebhookNotifier(webhook_url)
    logger.info("ℹ️  No NOTIFY_WEBHOOK_URL set, notifications are only logged")
    return LogNotifier()
