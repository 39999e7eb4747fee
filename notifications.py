import logging

import requests

from config import settings

logger = logging.getLogger(__name__)


# --- TELEGRAM ---
def notify_admin(messaggio):
    token = settings.TELEGRAM_BOT_TOKEN
    chat_id = settings.TELEGRAM_CHAT_ID

    if not token or not chat_id:
        logger.warning("⚠️ Telegram non configurato, notifica non inviata")
        return False

    url = f"https://api.telegram.org/bot{token}/sendMessage"
    payload = {"chat_id": chat_id, "text": messaggio, "parse_mode": "Markdown"}
    try:
        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"❌ Errore Telegram: {e}")
        return False
    return True
