from .notification_service import NotificationService, get_notification_service
from .senders import DispatchResult, EmailSender, SMSSender, format_phone_number

__all__ = [
    'NotificationService', 'get_notification_service',
    'DispatchResult', 'EmailSender', 'SMSSender', 'format_phone_number'
]
