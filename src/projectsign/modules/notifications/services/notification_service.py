# modules/notifications/services/notification_service.py
from typing import Optional

from projectsign.config import get_settings
from projectsign.modules.notifications.services.senders import (
    DispatchResult, EmailSender, SMSSender
)
from projectsign.modules.notifications.services.templates import (
    SigningLinkEmail, SigningLinkSMS
)


class NotificationService:
    def __init__(self, email_sender: EmailSender, sms_sender: SMSSender, expiry_hours: int = 48):
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.expiry_hours = expiry_hours

    def send_signing_link_email(
        self,
        to: str,
        form_type_label: str,
        project_name: str,
        signing_url: str,
        contact_name: Optional[str] = None
    ) -> DispatchResult:
        template = SigningLinkEmail(
            to, form_type_label, project_name, signing_url,
            contact_name=contact_name, expiry_hours=self.expiry_hours
        )
        return self.email_sender.send(template)

    def send_signing_link_sms(
        self,
        to: str,
        form_type_label: str,
        project_name: str,
        signing_url: str
    ) -> DispatchResult:
        template = SigningLinkSMS(to, form_type_label, project_name, signing_url)
        return self.sms_sender.send(template)


def get_notification_service() -> NotificationService:
    settings = get_settings()
    email_sender = EmailSender(
        settings.resend_api_key,
        settings.email_from,
        timeout=settings.dispatch_timeout_seconds
    )
    sms_sender = SMSSender(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_phone_number,
        timeout=settings.dispatch_timeout_seconds
    )
    return NotificationService(email_sender, sms_sender, settings.signing_token_expiry_hours)
