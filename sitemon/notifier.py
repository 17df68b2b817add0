# -*- codeing = utf-8 -*-
# @Create: 2026-10-18 10:05 a.m.
# @Update: 2026-10-18 10:05 a.m.
"""Best-effort operator notifications."""

import html
import logging
import threading
from typing import Optional

import requests

from configuration import TelegramSettings

LOGGER = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


class Notifier:
    """Deliver text to operators. Implementations never raise on delivery failure."""

    def send(self, text: str) -> None:  # pragma: no cover - interface contract
        raise NotImplementedError


class NullNotifier(Notifier):

    def send(self, text: str) -> None:
        LOGGER.debug("notify.disabled text=%s", text)


class TelegramNotifier(Notifier):
    """Post messages to a Telegram chat through the Bot API.

    Text is sent as plain text, escaped for Telegram's HTML parse mode so
    site identifiers carrying ``&``, ``<`` or ``>`` are delivered intact.
    Sends are serialised so concurrent monitors share one session safely.
    """

    def __init__(self,
                 token: str,
                 chat_id: str,
                 *,
                 timeout: float = 10.0,
                 session: Optional[requests.Session] = None) -> None:
        self._token = token
        self._chat_id = chat_id
        self._timeout = timeout
        self._session = session or requests.Session()
        self._lock = threading.RLock()

    @property
    def api_url(self) -> str:
        return TELEGRAM_API_URL.format(token=self._token)

    def send(self, text: str) -> None:
        payload = {
            "chat_id": self._chat_id,
            "text": html.escape(text, quote=False),
            "parse_mode": "HTML",
        }
        try:
            with self._lock:
                response = self._session.post(self.api_url,
                                              data=payload,
                                              timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.warning("notify.telegram.error chat_id=%s error=%s",
                           self._chat_id, self._redact(str(exc)))
            return
        LOGGER.debug("notify.telegram.sent chat_id=%s", self._chat_id)

    def _redact(self, text: str) -> str:
        if self._token:
            return text.replace(self._token, "<redacted>")
        return text


def build_notifier(settings: TelegramSettings) -> Notifier:
    if not settings.enabled:
        return NullNotifier()
    return TelegramNotifier(settings.token,
                            settings.chat_id,
                            timeout=settings.timeout)
