"""
SMS Dispatch

Sends a message to a batch of recipients. Phone numbers are normalized
before they reach the provider; delivery semantics belong to the provider.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

import requests

from ..config import settings
from ..utils.phone import normalize_phone, mask_phone

logger = logging.getLogger(__name__)


class SmsDeliveryError(Exception):
    """Provider rejected the batch or is not configured"""


@dataclass
class SmsResult:
    success: bool
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    message: str = ""


class TextLkBackend:
    """Text.lk v3 HTTP API"""

    def __init__(self, api_url: str, api_token: str, sender_id: str, timeout: int = 10):
        self.api_url = api_url
        self.api_token = api_token
        self.sender_id = sender_id
        self.timeout = timeout

    def send(self, recipients: List[str], message: str) -> dict:
        if not self.api_token or not self.sender_id:
            raise SmsDeliveryError("SMS service not configured")

        payload = {
            "recipient": ",".join(recipients),
            "sender_id": self.sender_id,
            "type": "plain",
            "message": message
        }

        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json"
        }

        response = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)

        try:
            result = response.json()
        except ValueError:
            raise SmsDeliveryError(f"Unexpected SMS API response: HTTP {response.status_code}")

        if response.status_code >= 400 or result.get("status") == "error":
            raise SmsDeliveryError(f"SMS API error: {result.get('message', 'Unknown error')}")

        return result


class LogBackend:
    """Development backend: logs instead of sending"""

    def send(self, recipients: List[str], message: str) -> dict:
        logger.info(
            f"SMS (log backend) to {', '.join(mask_phone(r) for r in recipients)}: "
            f"{len(message)} characters"
        )
        return {"status": "success"}


class SmsDispatcher:
    def __init__(self, backend):
        self.backend = backend

    @staticmethod
    def prepare_recipients(recipients: Iterable[str]) -> List[str]:
        """Normalize, drop unusable numbers and duplicates, keep order"""
        prepared = []
        for raw in recipients:
            phone = normalize_phone(raw)
            if phone and phone not in prepared:
                prepared.append(phone)
        return prepared

    def send(self, recipients: Iterable[str], message: str) -> SmsResult:
        phones = self.prepare_recipients(recipients)
        if not phones:
            return SmsResult(success=True, message="No recipients found")

        try:
            self.backend.send(phones, message)
        except (requests.RequestException, SmsDeliveryError) as e:
            logger.warning(f"SMS dispatch to {len(phones)} recipient(s) failed: {e}")
            return SmsResult(success=False, failed=phones, message="Failed to send SMS")

        logger.info(f"SMS dispatched to {len(phones)} recipient(s)")
        return SmsResult(success=True, sent=phones, message="SMS sent successfully")


def get_sms_dispatcher() -> SmsDispatcher:
    """Dispatcher for the configured backend"""
    if settings.SMS_BACKEND == "textlk":
        backend = TextLkBackend(
            api_url=settings.TEXTLK_API_URL,
            api_token=settings.TEXTLK_API_TOKEN,
            sender_id=settings.TEXTLK_SENDER_ID,
            timeout=settings.SMS_TIMEOUT_SECONDS
        )
    else:
        backend = LogBackend()
    return SmsDispatcher(backend)
