"""
Push notifications to market subscribers.

Public API:
  Notifier.notify(market_id, event_kind)  → None  (fire-and-forget)
  get_notifier()                          → Notifier  (webhook if configured)

Delivery is best-effort: every implementation swallows and logs its own
transport errors so a failed push can never undo a committed placement or
resolution.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import requests

from wagering.models import utcnow

logger = logging.getLogger(__name__)

ODDS_UPDATED = "odds_updated"
MARKET_RESOLVED = "market_resolved"


class Notifier(ABC):
    @abstractmethod
    def notify(self, market_id: int, event_kind: str) -> None:
        ...


class NullNotifier(Notifier):
    def notify(self, market_id: int, event_kind: str) -> None:
        return None


class LoggingNotifier(Notifier):
    """Writes events to the log; the default when no webhook is configured."""

    def notify(self, market_id: int, event_kind: str) -> None:
        logger.info("Notify: market %d %s", market_id, event_kind)


class WebhookNotifier(Notifier):
    """POSTs ``{"market_id", "event", "timestamp"}`` to a subscriber relay."""

    def __init__(self, url: str, timeout: float = 5.0, token: Optional[str] = None):
        self.url = url
        self.timeout = timeout
        self.token = token

    def notify(self, market_id: int, event_kind: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {
            "market_id": market_id,
            "event": event_kind,
            "timestamp": utcnow().isoformat(),
        }
        try:
            resp = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            logger.debug("Webhook delivered: market %d %s", market_id, event_kind)
        except requests.exceptions.RequestException as exc:
            logger.error("Webhook dispatch failed (market %d, %s): %s", market_id, event_kind, exc)


def get_notifier() -> Notifier:
    url = os.getenv("NOTIFY_WEBHOOK_URL")
    if not url:
        logger.debug("NOTIFY_WEBHOOK_URL not set; logging notifications only")
        return LoggingNotifier()
    return WebhookNotifier(
        url,
        timeout=float(os.getenv("NOTIFY_WEBHOOK_TIMEOUT", "5")),
        token=os.getenv("NOTIFY_WEBHOOK_TOKEN"),
    )
