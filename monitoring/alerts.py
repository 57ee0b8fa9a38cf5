"""monitoring/alerts.py

Telegram bot client for transfer notifications:
- scheduled transfer fires (sent / failed)
- asynchronous confirmations

Design goals:
- Zero secrets in code (env vars only)
- Fail-safe (never crash the scheduler on alert failure)
- Strict timeouts (prevent blocking a fire thread)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

import requests

from execution.models import TransferResult

logger = logging.getLogger(__name__)

# Alert levels
ALERT_INFO = "INFO"
ALERT_WARNING = "WARNING"
ALERT_ERROR = "ERROR"

WEI_PER_ETH = 10**18


@dataclass
class TelegramBot:
    """Telegram bot client for sending alerts.

    Attributes:
        token: Bot token from TELEGRAM_BOT_TOKEN env var.
        chat_id: Chat ID from TELEGRAM_CHAT_ID env var.
        timeout: Request timeout in seconds (default: 3).
    """

    token: str
    chat_id: str
    timeout: int = 3
    _session: Optional[requests.Session] = None

    @classmethod
    def from_env(cls, timeout: int = 3) -> "TelegramBot":
        """Create bot from environment variables."""
        token = os.getenv("TELEGRAM_BOT_TOKEN")
        chat_id = os.getenv("TELEGRAM_CHAT_ID")

        if not token or not chat_id:
            logger.info("[alerts] TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID not set, alerts disabled")
            return cls(token="", chat_id="", timeout=timeout)

        return cls(token=token, chat_id=chat_id, timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    def _get_session(self) -> requests.Session:
        """Get or create a session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def send_message(self, text: str, level: str = ALERT_INFO, disable_notification: bool = False) -> bool:
        """Send a message to the configured chat.

        Returns:
            True if sent successfully, False otherwise.
        """
        if not self.enabled:
            logger.debug(f"[alerts] Would send (disabled): {text[:50]}...")
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": f"[{level}] {text}",
            "parse_mode": "Markdown",
            "disable_notification": disable_notification,
        }
        url = f"https://api.telegram.org/bot{self.token}/sendMessage"

        try:
            response = self._get_session().post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            logger.debug(f"[alerts] Sent: {text[:50]}...")
            return True
        except requests.exceptions.Timeout:
            logger.warning(f"[alerts] Timeout sending message: {text[:50]}...")
            return False
        except requests.exceptions.RequestException as e:
            logger.warning(f"[alerts] Request failed: {e}")
            return False


def compose_transfer_alert(result: TransferResult, job: Any = None) -> str:
    """Compose a readable alert message for a transfer result.

    Args:
        result: Dispatch or confirmation result.
        job: Optional ScheduledJob the result belongs to.

    Returns:
        Formatted message string.
    """
    lines = []
    if result.kind == "failed":
        lines.append("*Transfer FAILED*")
    elif result.kind == "confirmed" and result.reverted:
        lines.append("*Transfer REVERTED*")
    elif result.kind == "confirmed":
        lines.append("*Transfer confirmed*")
    else:
        lines.append("*Transfer sent*")

    if job is not None:
        lines.append(f"- Job: `{job.job_id}` (`{job.cron_expression}`)")
        lines.append(f"- Amount: `{job.request.amount_wei / WEI_PER_ETH:.6f}` ETH")
    lines.append(f"- Network: `{result.network or '-'}`")
    lines.append(f"- To: `{result.recipient or '-'}`")

    if result.kind == "failed":
        lines.append(f"- Reason: `{result.reason}`")
        if result.detail:
            lines.append(f"- Detail: `{result.detail[:200]}`")
    else:
        lines.append(f"- Tx: `{result.tx_hash}`")
        if result.kind == "confirmed":
            lines.append(f"- Block: `{result.block.number}`")
        elif result.warning:
            lines.append(f"- Warning: `{result.warning}`")

    return "\n".join(lines)


def alert_level(result: TransferResult) -> str:
    if not result.ok:
        return ALERT_ERROR
    if result.kind == "submitted" and result.warning:
        return ALERT_WARNING
    return ALERT_INFO


def make_result_notifier(bot: TelegramBot):
    """Scheduler on_result callback that forwards each result to Telegram."""

    def _notify(job: Any, result: TransferResult) -> None:
        bot.send_message(compose_transfer_alert(result, job), level=alert_level(result))

    return _notify
