import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from config import get_settings

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, text: str) -> bool:
    """Send a plain-text email. Failures are logged, never raised."""
    settings = get_settings()
    if not settings.email_enabled:
        logger.warning("Email disabled (GMAIL_USER/GMAIL_PASS unset); skipping mail to %s", to_email)
        return False

    try:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((settings.mail_from_name, settings.gmail_user))
        msg["To"] = to_email
        msg.attach(MIMEText(text, "plain"))

        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port) as server:
            server.login(settings.gmail_user, settings.gmail_pass)
            server.sendmail(settings.gmail_user, [to_email], msg.as_string())

        logger.info("✅ Email sent to %s", to_email)
        return True
    except Exception as e:
        logger.error("❌ Email to %s failed: %s", to_email, e)
        return False


def issue_assigned_text(full_name: str, issue: str, description: str, address: str) -> str:
    return (
        f"Dear {full_name},\n\n"
        "You have been assigned a new issue:\n\n"
        f"Issue: {issue}\n"
        f"Description: {description or '-'}\n"
        f"Address: {address}\n\n"
        "Please address this issue as soon as possible.\n\n"
        "Thank you,\n"
        f"{get_settings().mail_from_name}"
    )
