"""
Telegram notifications for extractor health alerts.
"""

import logging
import httpx
from typing import Optional

from src.config import Config
from src.core.monitor import AlertType, HealthAlert

logger = logging.getLogger('Scribe.Notifications')

ALERT_EMOJI = {
    AlertType.DEGRADED: "⚠️",
    AlertType.CRITICAL: "🚨",
    AlertType.RECOVERED: "✅",
}


async def send_telegram_message(text: str, chat_id: str = None) -> bool:
    """Send a message to Telegram."""
    if not Config.TELEGRAM_BOT_URL:
        logger.warning("TELEGRAM_BOT_URL not configured, skipping notification")
        return False

    target_chat_id = chat_id or Config.TELEGRAM_CHAT_ID
    if not target_chat_id:
        logger.warning("No chat_id and TELEGRAM_CHAT_ID not configured")
        return False

    url = f"{Config.TELEGRAM_BOT_URL.rstrip('/')}/send_message"

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(url, json={
                "chat_id": int(target_chat_id),
                "text": text,
                "parse_mode": "Markdown"
            })

            if response.status_code == 200:
                logger.info("Telegram notification sent")
                return True
            else:
                logger.error(f"Telegram send failed: {response.status_code}")
                return False

    except Exception as e:
        logger.error(f"Error sending Telegram message: {e}")
        return False


def build_health_alert_message(alert: HealthAlert) -> str:
    """Build the message for one health alert."""
    emoji = ALERT_EMOJI.get(alert.type, "ℹ️")
    lines = [
        f"{emoji} *Extractor {alert.type.value}*",
        "",
        f"🔌 Extractor: `{alert.extractor_name}`",
        f"📉 {alert.message}",
        "",
        f"_{alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')}_",
    ]
    return "\n".join(lines)


async def send_health_alert(alert: HealthAlert, chat_id: Optional[str] = None) -> bool:
    """Alert handler for HealthMonitor: forwards the alert to Telegram."""
    return await send_telegram_message(build_health_alert_message(alert), chat_id=chat_id)


def telegram_configured() -> bool:
    return bool(Config.TELEGRAM_BOT_URL and Config.TELEGRAM_CHAT_ID)
