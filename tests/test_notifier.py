import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import requests

from configuration import TelegramSettings  # noqa: E402
from sitemon import notifier  # noqa: E402
from sitemon.notifier import (  # noqa: E402
    NullNotifier,
    TelegramNotifier,
    build_notifier,
)


class DummyResponse:

    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class DummySession:

    def __init__(self, response=None, error=None):
        self.response = response or DummyResponse()
        self.error = error
        self.calls = []

    def post(self, url, data=None, timeout=None):
        self.calls.append((url, data, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def test_telegram_notifier_posts_html_message():
    session = DummySession()
    sink = TelegramNotifier("123:abc", "42", timeout=3.5, session=session)

    sink.send("example.com is back online. Downtime was 10 seconds")

    assert session.calls == [(
        "https://api.telegram.org/bot123:abc/sendMessage",
        {
            "chat_id": "42",
            "text": "example.com is back online. Downtime was 10 seconds",
            "parse_mode": "HTML",
        },
        3.5,
    )]


def test_telegram_notifier_escapes_html_special_characters():
    session = DummySession()
    sink = TelegramNotifier("123:abc", "42", session=session)

    sink.send("example.com/status?a=1&b=<x> response FAIL with code 500")

    (_, payload, _), = session.calls
    assert payload["text"] == (
        "example.com/status?a=1&amp;b=&lt;x&gt; response FAIL with code 500")
    assert payload["parse_mode"] == "HTML"


def test_telegram_notifier_swallows_connection_errors(caplog):
    session = DummySession(
        error=requests.ConnectionError("cannot reach api.telegram.org/bot123:abc"))
    sink = TelegramNotifier("123:abc", "42", session=session)

    with caplog.at_level(logging.WARNING, logger=notifier.__name__):
        sink.send("hello")

    assert "notify.telegram.error" in caplog.text
    assert "123:abc" not in caplog.text
    assert "<redacted>" in caplog.text


def test_telegram_notifier_swallows_http_errors(caplog):
    session = DummySession(response=DummyResponse(401))
    sink = TelegramNotifier("123:abc", "42", session=session)

    with caplog.at_level(logging.WARNING, logger=notifier.__name__):
        sink.send("hello")

    assert len(session.calls) == 1
    assert "notify.telegram.error" in caplog.text


def test_build_notifier_respects_enable_switch():
    disabled = build_notifier(TelegramSettings(enabled=False, token="t", chat_id="c"))
    enabled = build_notifier(TelegramSettings(enabled=True, token="t", chat_id="c"))

    assert isinstance(disabled, NullNotifier)
    assert isinstance(enabled, TelegramNotifier)


def test_null_notifier_never_touches_the_network(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("network must not be used")

    monkeypatch.setattr(requests, "post", _fail)
    monkeypatch.setattr(requests.Session, "post", _fail)

    NullNotifier().send("nothing to see")
