from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

import requests
from flask import current_app

from utils.notify import format_phone_number, is_valid_phone_number, optimize_sms_text

logger = logging.getLogger(__name__)

PROVIDER = "fast2sms"


@dataclass
class SendResult:
    success: bool
    provider_message_id: str | None = None
    error: str | None = None
    provider: str = PROVIDER
    response: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "provider_message_id": self.provider_message_id,
            "error": self.error,
            "provider": self.provider,
            "response": self.response,
        }


class NotificationSender(Protocol):
    def send(self, phone_number: str, message: str, metadata: Dict[str, Any] | None = None) -> SendResult:
        ...


class Fast2SMSSender:
    """Quick SMS route of the Fast2SMS bulkV2 API (no DLT template needed)."""

    def __init__(
        self,
        api_key: str | None,
        enabled: bool = False,
        api_url: str = "https://www.fast2sms.com/dev/bulkV2",
        wallet_url: str = "https://www.fast2sms.com/dev/wallet",
        timeout: float = 20,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key or ""
        self.enabled = enabled
        self.api_url = api_url
        self.wallet_url = wallet_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg) -> "Fast2SMSSender":
        return cls(
            api_key=cfg.get("FAST2SMS_API_KEY"),
            enabled=bool(cfg.get("SMS_ENABLED")),
            api_url=cfg.get("FAST2SMS_API_URL", "https://www.fast2sms.com/dev/bulkV2"),
            wallet_url=cfg.get("FAST2SMS_WALLET_URL", "https://www.fast2sms.com/dev/wallet"),
            timeout=float(cfg.get("SMS_TIMEOUT_SECONDS", 20)),
        )

    def is_configured(self) -> tuple[bool, str | None]:
        if not self.enabled:
            return False, "SMS service disabled"
        if not self.api_key:
            return False, "FAST2SMS_API_KEY not configured"
        return True, None

    def send(self, phone_number: str, message: str, metadata: Dict[str, Any] | None = None) -> SendResult:
        ok, reason = self.is_configured()
        if not ok:
            logger.info("SMS not sent to %s: %s", phone_number, reason)
            return SendResult(False, error=reason)

        formatted = format_phone_number(phone_number)
        if not is_valid_phone_number(formatted):
            return SendResult(False, error=f"Invalid phone number format: {phone_number}")

        body = optimize_sms_text(message)
        params = {
            "authorization": self.api_key,
            "message": body,
            "language": "english",
            "route": "q",
            "numbers": formatted,
            "flash": 0,
        }
        logger.info("Sending SMS to %s via Fast2SMS: %s", formatted, body[:100])
        try:
            r = self.session.get(self.api_url, params=params, timeout=self.timeout)
            data = r.json()
        except requests.RequestException as e:
            logger.warning("Fast2SMS request failed for %s: %s", formatted, e)
            return SendResult(False, error=str(e))
        except ValueError:
            return SendResult(False, error=f"HTTP {r.status_code}: {r.text[:200]}")

        if 200 <= r.status_code < 300 and data.get("return") is True:
            return SendResult(True, provider_message_id=data.get("request_id"), response=data)
        return SendResult(False, error=f"Fast2SMS error (HTTP {r.status_code}): {data.get('message') or data}",
                          response=data)

    def check_wallet_balance(self) -> Dict[str, Any]:
        if not self.api_key:
            return {"success": False, "error": "FAST2SMS_API_KEY not configured"}
        try:
            r = self.session.get(self.wallet_url, params={"authorization": self.api_key}, timeout=self.timeout)
            data = r.json()
        except requests.RequestException as e:
            return {"success": False, "error": str(e)}
        except ValueError:
            return {"success": False, "error": f"HTTP {r.status_code}"}
        if data.get("return") is True:
            return {"success": True, "balance": data.get("wallet"), "currency": "INR"}
        return {"success": False, "error": "Failed to fetch wallet balance"}


def get_sender() -> NotificationSender:
    """The app's sender (tests swap ``app.extensions['sms_sender']``)."""
    sender = current_app.extensions.get("sms_sender")
    if sender is None:
        sender = Fast2SMSSender.from_config(current_app.config)
        current_app.extensions["sms_sender"] = sender
    return sender
