# src/projectsign/modules/notifications/services/senders.py

import re
from dataclasses import dataclass
from typing import Optional

import httpx

from projectsign.modules.notifications.services.templates import NotificationTemplate
from projectsign.utils.logger import get_logger

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


@dataclass
class DispatchResult:
    success: bool
    error: Optional[str] = None


def format_phone_number(phone: str) -> str:
    """Normaliza un teléfono israelí a formato internacional (+972...)."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("0"):
        return "+972" + digits[1:]
    if digits.startswith("972"):
        return "+" + digits
    return "+972" + digits


class EmailSender:
    """Envía emails con la API HTTP de Resend."""

    def __init__(self, api_key: Optional[str], from_address: str, timeout: float = 10.0,
                 client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout
        self.client = client

    def send(self, message: NotificationTemplate) -> DispatchResult:
        if not self.api_key:
            logger.error("email_not_configured")
            return DispatchResult(False, "Email service not configured")

        payload = {
            "from": self.from_address,
            "to": [message.recipient],
            "subject": message.subject,
            "html": message.body,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self.client is not None:
                response = self.client.post(RESEND_API_URL, json=payload, headers=headers, timeout=self.timeout)
            else:
                response = httpx.post(RESEND_API_URL, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("email_send_failed", status_code=e.response.status_code)
            return DispatchResult(False, f"Email provider error ({e.response.status_code})")
        except httpx.HTTPError as e:
            logger.error("email_send_failed", error=str(e))
            return DispatchResult(False, "Failed to send email")
        return DispatchResult(True)


class SMSSender:
    """Envía SMS con la API REST de Twilio."""

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str],
                 from_number: Optional[str], timeout: float = 10.0,
                 client: Optional[httpx.Client] = None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self.client = client

    def send(self, message: NotificationTemplate) -> DispatchResult:
        if not (self.account_sid and self.auth_token and self.from_number):
            logger.error("sms_not_configured")
            return DispatchResult(False, "SMS service not configured")

        url = TWILIO_API_URL.format(sid=self.account_sid)
        data = {
            "Body": message.body,
            "From": self.from_number,
            "To": format_phone_number(message.recipient),
        }
        auth = (self.account_sid, self.auth_token)
        try:
            if self.client is not None:
                response = self.client.post(url, data=data, auth=auth, timeout=self.timeout)
            else:
                response = httpx.post(url, data=data, auth=auth, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("sms_send_failed", status_code=e.response.status_code)
            return DispatchResult(False, f"SMS provider error ({e.response.status_code})")
        except httpx.HTTPError as e:
            logger.error("sms_send_failed", error=str(e))
            return DispatchResult(False, "Failed to send SMS")
        return DispatchResult(True)
