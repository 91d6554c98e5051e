"""
Mail Service - templated applicant emails over SMTP (SSL).

send_mail raises on failure so batch callers can record a per-user outcome;
send_quietly is the fire-and-forget variant used from background tasks.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from intake.core.config import Settings
from intake.schemas.schemas import EmailStatus
from intake.services.user_service import UserService
from intake.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

_templates = Environment(
    loader=PackageLoader("intake", "templates"),
    autoescape=select_autoescape(["html"])
)


class MailService:
    """Renders the applicant template and delivers it."""

    def __init__(self, settings: Settings, users: Optional[UserService] = None):
        self.settings = settings
        self.users = users

    def render(self, name: str) -> str:
        return _templates.get_template(self.settings.mail_template).render(receiverName=name)

    def send_mail(self, email: str, name: str, subject: Optional[str] = None) -> None:
        """Send the applicant template to one recipient."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject or self.settings.mail_subject
        msg["From"] = self.settings.mail_from or self.settings.smtp_user
        msg["To"] = email
        msg.attach(MIMEText(self.render(name), "html", "utf-8"))

        with smtplib.SMTP_SSL(self.settings.smtp_host, self.settings.smtp_port, timeout=30) as server:
            if self.settings.smtp_user:
                server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.send_message(msg)
        logger.info("Email sent to %s", email)

    def send_quietly(self, email: str, name: str, subject: Optional[str] = None) -> bool:
        try:
            self.send_mail(email, name, subject)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Error sending email to %s: %s", email, e)
            return False

    def send_unfilled_emails(self, users: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Email every user in the list; one failure never stops the rest.

        Each user is marked pending before the attempt and success/error
        after it. Returns one {id, status[, error]} entry per user.
        """
        results = []
        for user in users:
            user_id = user.get("userId") or user.get("_id")
            email = user.get("email")
            name = " ".join(x for x in (user.get("firstname"), user.get("lastname")) if x) or "Applicant"
            if not email:
                results.append({"id": user_id, "status": EmailStatus.error.value, "error": "Missing email"})
                continue

            if self.users is not None and user_id:
                self.users.set_email_status(user_id, EmailStatus.pending.value)
            try:
                self.send_mail(email, name)
            except (smtplib.SMTPException, OSError) as e:
                logger.error("Error sending email to %s: %s", email, e)
                if self.users is not None and user_id:
                    self.users.set_email_status(user_id, EmailStatus.error.value)
                results.append({"id": user_id, "status": EmailStatus.error.value, "error": str(e)})
                continue

            if self.users is not None and user_id:
                self.users.set_email_status(user_id, EmailStatus.success.value, sent_at=utcnow())
            results.append({"id": user_id, "status": EmailStatus.success.value})
        return results
