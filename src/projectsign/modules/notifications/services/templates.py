from html import escape
from typing import Optional


class NotificationTemplate:
    def __init__(self, recipient: str, subject: str, body: str):
        self.recipient = recipient
        self.subject = subject
        self.body = body

    def to_dict(self):
        return {
            'recipient': self.recipient,
            'subject': self.subject,
            'body': self.body
        }


class SigningLinkEmail(NotificationTemplate):
    def __init__(self, recipient: str, form_type_label: str, project_name: str,
                 signing_url: str, contact_name: Optional[str] = None,
                 expiry_hours: int = 48):
        greeting = f"שלום {escape(contact_name)}," if contact_name else "שלום,"
        subject = f"{form_type_label} - {project_name} | דרוש חתימתך"
        body = f"""<!DOCTYPE html>
<html dir="rtl" lang="he">
<head><meta charset="UTF-8"></head>
<body style="font-family: Arial, sans-serif; direction: rtl; text-align: right;">
  <h1>ProjectSign</h1>
  <p>{greeting}</p>
  <p>מצורף קישור לחתימה על <strong>{escape(form_type_label)}</strong> עבור פרויקט <strong>{escape(project_name)}</strong>.</p>
  <p><a href="{escape(signing_url)}">לחתימה על המסמך</a></p>
  <p>הקישור תקף ל-{expiry_hours} שעות. אם הקישור פג תוקף, אנא פנה למשרד לקבלת קישור חדש.</p>
  <p style="font-size: 12px; color: #999;">הודעה זו נשלחה באמצעות מערכת ProjectSign. אם לא ביקשת מסמך זה, אנא התעלם מהודעה זו.</p>
</body>
</html>"""
        super().__init__(recipient, subject, body)


class SigningLinkSMS(NotificationTemplate):
    def __init__(self, recipient: str, form_type_label: str, project_name: str, signing_url: str):
        body = (
            f"ProjectSign: מסמך {form_type_label} עבור \"{project_name}\" ממתין לחתימתך.\n\n"
            f"לחתימה לחץ כאן:\n{signing_url}"
        )
        super().__init__(recipient, "", body)
