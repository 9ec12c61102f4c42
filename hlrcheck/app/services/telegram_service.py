# hlrcheck/app/services/telegram_service.py
"""
Telegram notifications for admins (new access requests, low provider balance).
Bot token and chat id live in the app_settings table.
"""

import html
import logging
from datetime import timedelta, datetime
from typing import Dict, Any, Optional

import requests

from hlrcheck.app.models.base import utcnow
from hlrcheck.app.repositories.setting_repository import SettingRepository

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot"

BOT_TOKEN_KEY = "telegram_bot_token"
CHAT_ID_KEY = "telegram_chat_id"
BALANCE_THRESHOLD_KEY = "balance_alert_threshold"
BALANCE_LAST_SENT_KEY = "balance_alert_last_sent"

BALANCE_ALERT_INTERVAL = timedelta(hours=24)


def _post_message(token: str, chat_id: str, text: str, parse_mode: str = "HTML") -> Dict[str, Any]:
    resp = requests.post(
        f"{TELEGRAM_API_URL}{token}/sendMessage",
        json={"chat_id": chat_id, "text": text, "parse_mode": parse_mode},
        timeout=10,
    )
    return resp.json()


def send_telegram_message(db, text: str, parse_mode: str = "HTML") -> bool:
    settings_repo = SettingRepository(db)
    token = settings_repo.get_value(BOT_TOKEN_KEY)
    chat_id = settings_repo.get_value(CHAT_ID_KEY)

    if not token or not chat_id:
        logger.info("telegram not configured, skipping notification")
        return False

    try:
        data = _post_message(token, chat_id, text, parse_mode)
    except (requests.RequestException, ValueError) as e:
        logger.warning("telegram send failed: %s", e)
        return False

    if not data.get("ok"):
        logger.warning("telegram rejected message: %s", data.get("description"))
        return False
    return True


def notify_new_access_request(db, name: str, telegram: Optional[str] = None, email: Optional[str] = None) -> bool:
    lines = [
        "🔔 <b>New access request</b>",
        "",
        f"👤 <b>Name:</b> {html.escape(name or '')}",
        f"📱 <b>Telegram:</b> {html.escape(telegram) if telegram else 'not specified'}",
    ]
    if email:
        lines.append(f"✉️ <b>Email:</b> {html.escape(email)}")
    lines += ["", "<i>Open the admin panel to review the request.</i>"]
    return send_telegram_message(db, "\n".join(lines))


def test_telegram_connection(token: str, chat_id: str) -> Dict[str, Any]:
    try:
        data = _post_message(
            token,
            chat_id,
            "✅ Test message from HLR Checker. Notifications are configured.",
        )
    except (requests.RequestException, ValueError) as e:
        return {"success": False, "message": f"Connection error: {e}"}

    if not data.get("ok"):
        return {"success": False, "message": data.get("description") or "Unknown error"}
    return {"success": True, "message": "Test message sent"}


def notify_low_balance(db, balance: float, currency: str = "EUR", now: Optional[datetime] = None) -> bool:
    """
    Alert when balance drops below the configured threshold,
    at most once per BALANCE_ALERT_INTERVAL.
    """
    settings_repo = SettingRepository(db)
    raw_threshold = settings_repo.get_value(BALANCE_THRESHOLD_KEY)
    if not raw_threshold:
        return False
    try:
        threshold = float(raw_threshold)
    except ValueError:
        logger.warning("invalid balance threshold setting: %r", raw_threshold)
        return False

    if balance >= threshold:
        return False

    now = now or utcnow()
    last_sent = settings_repo.get_value(BALANCE_LAST_SENT_KEY)
    if last_sent:
        try:
            if now - datetime.fromisoformat(last_sent) < BALANCE_ALERT_INTERVAL:
                return False
        except ValueError:
            pass  # unparsable marker: send and overwrite it

    sent = send_telegram_message(
        db,
        f"⚠️ <b>Low HLR balance</b>\n\nBalance: {balance:.2f} {html.escape(currency)}\nThreshold: {threshold:.2f}",
    )
    if sent:
        settings_repo.set_value(BALANCE_LAST_SENT_KEY, now.isoformat())
    return sent
