"""
Email service using Resend API
"""

import logging
from typing import List

import resend

from config import settings

logger = logging.getLogger(__name__)


def _send(recipients: List[str], subject: str, body: str) -> bool:
    """Send a plain text mail. Failures are logged, never raised."""
    if not recipients:
        logger.info(f"No recipients configured, not sending '{subject}'")
        return False
    if not settings.RESEND_API_KEY:
        logger.warning(f"RESEND_API_KEY not set, not sending '{subject}'")
        return False

    resend.api_key = settings.RESEND_API_KEY
    email_data = {
        "from": settings.FROM_EMAIL,
        "to": recipients,
        "subject": subject,
        "html": f"<p>{body.replace(chr(10), '<br>')}</p>",
        "text": body,
    }

    try:
        result = resend.Emails.send(email_data)
    except Exception as e:
        logger.error(f"Email sending failed: {e}")
        return False

    # Extract just the ID string from the Resend response
    if hasattr(result, 'id'):
        resend_id = result.id
    elif isinstance(result, dict) and 'id' in result:
        resend_id = result['id']
    else:
        resend_id = None
    logger.info(f"Email sent via Resend - ID: {resend_id}, To: {', '.join(recipients)}")
    return True


def send_notification(subject: str, body: str) -> bool:
    """Announce newly available material to the notification recipients"""
    return _send(settings.NOTIFICATION_EMAILS, subject, body)


def send_operator_alert(subject: str, body: str) -> bool:
    """Alert the operators about a failure that needs a human"""
    return _send(settings.ADMIN_ALERT_EMAILS, f"🚨 {subject}", body)
