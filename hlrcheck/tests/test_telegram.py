from datetime import datetime, timedelta

import requests

from hlrcheck.app.repositories.setting_repository import SettingRepository
from hlrcheck.app.services import telegram_service


class _Resp:
    def __init__(self, data):
        self._data = data

    def json(self):
        return self._data


def _configure(db, threshold=None):
    repo = SettingRepository(db)
    repo.set_value(telegram_service.BOT_TOKEN_KEY, "123:abc")
    repo.set_value(telegram_service.CHAT_ID_KEY, "42")
    if threshold is not None:
        repo.set_value(telegram_service.BALANCE_THRESHOLD_KEY, str(threshold))
    return repo


def test_not_configured_skips(db):
    assert telegram_service.send_telegram_message(db, "hi") is False


def test_send_message_posts_to_bot(db, monkeypatch):
    _configure(db)
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json))
        return _Resp({"ok": True})

    monkeypatch.setattr(requests, "post", fake_post)
    assert telegram_service.notify_new_access_request(db, "<Jo>", telegram="@jo") is True
    url, body = calls[0]
    assert url.endswith("/bot123:abc/sendMessage")
    assert body["chat_id"] == "42"
    assert "&lt;Jo&gt;" in body["text"]


def test_send_failure_returns_false(db, monkeypatch):
    _configure(db)

    def boom(*a, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(requests, "post", boom)
    assert telegram_service.send_telegram_message(db, "hi") is False
    monkeypatch.setattr(requests, "post", lambda *a, **kw: _Resp({"ok": False, "description": "chat not found"}))
    assert telegram_service.send_telegram_message(db, "hi") is False


def test_connection_check(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: _Resp({"ok": False, "description": "Unauthorized"}))
    out = telegram_service.test_telegram_connection("bad", "1")
    assert out == {"success": False, "message": "Unauthorized"}


def test_low_balance_alert_is_throttled(db, monkeypatch):
    repo = _configure(db, threshold=10)
    sent = []
    monkeypatch.setattr(telegram_service, "send_telegram_message",
                        lambda db, text, parse_mode="HTML": sent.append(text) or True)
    now = datetime(2026, 3, 1, 12, 0, 0)

    assert telegram_service.notify_low_balance(db, 25.0, now=now) is False
    assert telegram_service.notify_low_balance(db, 4.5, now=now) is True
    assert "4.50" in sent[0]
    assert repo.get_value(telegram_service.BALANCE_LAST_SENT_KEY) == now.isoformat()

    assert telegram_service.notify_low_balance(db, 4.0, now=now + timedelta(hours=3)) is False
    assert telegram_service.notify_low_balance(db, 4.0, now=now + timedelta(hours=25)) is True
    assert len(sent) == 2


def test_low_balance_without_threshold(db):
    assert telegram_service.notify_low_balance(db, 0.0) is False
