"""
Outbound notifications. Fire-and-forget: delivery failures are logged, never raised.
"""

from __future__ import annotations

import logging

import httpx

from client.http import DEFAULT_TIMEOUT
from client.platform import Notifier

logger = logging.getLogger(__name__)

_TELEGRAM_API = "https://api.telegram.org"
# Telegram rejects messages longer than this
_MAX_MESSAGE_LEN = 4096


class TelegramNotifier:
    """Sends plain-text messages through the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        http: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        api_base: str = _TELEGRAM_API,
    ) -> None:
        if not bot_token:
            raise ValueError("TelegramNotifier requires a bot token")
        self._url = f"{api_base.rstrip('/')}/bot{bot_token}/sendMessage"
        self._http = http or httpx.Client(timeout=timeout)

    def deliver(self, recipient: str, message: str) -> None:
        payload = {
            "chat_id": recipient,
            "text": message[:_MAX_MESSAGE_LEN],
            "disable_web_page_preview": True,
        }
        try:
            resp = self._http.post(self._url, json=payload)
            resp.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("Telegram delivery to %s timed out", recipient)
        except httpx.HTTPError as e:
            logger.warning("Telegram delivery to %s failed: %s", recipient, e)


class LogNotifier:
    """Writes messages to the log. Used when no transport is configured."""

    def deliver(self, recipient: str, message: str) -> None:
        logger.info("[notify %s]\n%s", recipient or "-", message)


def build_notifier(bot_token: str, http: httpx.Client | None = None) -> Notifier:
    if bot_token:
        return TelegramNotifier(bot_token, http=http)
    return LogNotifier()
