"""monitoring/__init__.py

Telegram alerts for scheduled transfers.
"""

from .alerts import TelegramBot, compose_transfer_alert, make_result_notifier

__all__ = [
    "TelegramBot",
    "compose_transfer_alert",
    "make_result_notifier",
]
