"""Transactional email for the onboarding flow.

The provider is chosen with ``EMAIL_PROVIDER`` (smtp, resend or disabled).
Sending never raises: failures are logged and reported as ``None``.
"""

import asyncio
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Any

import aiosmtplib
import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

TEMPLATES_DIR = Path(__file__).parent.parent / "templates" / "emails"
SMTP_TIMEOUT_SECONDS = 30


@dataclass
class StudentCredentialLine:
    """One student row of the approval email."""

    name: str
    course: str
    email: str
    code: str | None
    password: str | None = None
    email_generated: bool = False
    existing: bool = False


@dataclass
class OutgoingEmail:
    sender: str
    recipients: list[str]
    subject: str
    html: str
    reply_to: str | None = None


class EmailService:
    """Renders the onboarding templates and hands them to the configured provider."""

    def __init__(self):
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    # === Transports ===

    async def _send_via_smtp(self, email: OutgoingEmail) -> str:
        message = EmailMessage()
        message["From"] = email.sender
        message["To"] = ", ".join(email.recipients)
        message["Subject"] = email.subject
        if email.reply_to:
            message["Reply-To"] = email.reply_to
        message.set_content(email.html, subtype="html")

        # 465 is implicit TLS; anything else upgrades with STARTTLS when enabled
        implicit_tls = settings.smtp_port == 465
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or None,
            password=settings.smtp_password or None,
            use_tls=implicit_tls,
            start_tls=False if implicit_tls else settings.smtp_use_tls,
            timeout=SMTP_TIMEOUT_SECONDS,
        )
        return f"smtp-{id(message)}"

    async def _send_via_resend(self, email: OutgoingEmail) -> str:
        resend.api_key = settings.resend_api_key
        params: dict[str, Any] = {
            "from": email.sender,
            "to": email.recipients,
            "subject": email.subject,
            "html": email.html,
        }
        if email.reply_to:
            params["reply_to"] = email.reply_to

        # The Resend client is blocking
        result = await asyncio.to_thread(resend.Emails.send, params)
        return result.get("id", "resend-ok")

    async def send(
        self,
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict[str, Any],
        reply_to: str | None = None,
        from_name: str | None = None,
    ) -> str | None:
        """Render ``template_name`` and send it.

        Returns the provider's message id, or None when email is disabled or
        delivery failed.
        """
        if not settings.email_enabled:
            logger.warning(f"Email disabled, skipping '{subject}' to {to}")
            return None

        provider = settings.email_provider
        try:
            email = OutgoingEmail(
                sender=f"{from_name or settings.email_from_name} <{settings.email_from_address}>",
                recipients=to if isinstance(to, list) else [to],
                subject=subject,
                html=self.jinja_env.get_template(template_name).render(**context),
                reply_to=reply_to,
            )
            if provider == "resend":
                message_id = await self._send_via_resend(email)
            else:
                message_id = await self._send_via_smtp(email)
        except Exception as e:
            logger.error(f"Failed to send '{subject}' via {provider} to {to}: {e}")
            return None

        logger.info(f"Email '{subject}' sent via {provider} to {email.recipients}: {message_id}")
        return message_id

    async def _send_school_mail(
        self,
        to: str,
        school_name: str,
        subject: str,
        template_name: str,
        **context: Any,
    ) -> str | None:
        """Send a template under the school's name."""
        return await self.send(
            to=to,
            subject=subject,
            template_name=template_name,
            context={"school_name": school_name, "app_name": settings.app_name, **context},
            from_name=school_name,
        )

    # === Guardian emails ===

    async def send_registration_received(
        self,
        to: str,
        guardian_name: str,
        school_name: str,
        student_names: list[str],
    ) -> str | None:
        return await self._send_school_mail(
            to,
            school_name,
            f"We received your registration request for {school_name}",
            "registration_received.html",
            guardian_name=guardian_name,
            student_names=student_names,
        )

    async def send_registration_approved(
        self,
        to: str,
        guardian_name: str,
        school_name: str,
        guardian_email: str,
        guardian_password: str,
        students: list[StudentCredentialLine],
    ) -> str | None:
        """Send the guardian the credentials of every account created on approval.

        Existing students are listed without a password.
        """
        return await self._send_school_mail(
            to,
            school_name,
            f"Your registration at {school_name} was approved",
            "registration_approved.html",
            guardian_name=guardian_name,
            guardian_email=guardian_email,
            guardian_password=guardian_password,
            students=students,
            login_url=settings.login_url,
        )

    async def send_registration_rejected(
        self,
        to: str,
        guardian_name: str,
        school_name: str,
        reason: str,
    ) -> str | None:
        return await self._send_school_mail(
            to,
            school_name,
            f"Your registration request at {school_name}",
            "registration_rejected.html",
            guardian_name=guardian_name,
            reason=reason,
        )

    # === Administrator emails ===

    async def notify_admins(
        self,
        db: AsyncSession,
        school_id: Any,
        notification_type: str,
        title: str,
        body: str,
        action_url: str | None = None,
    ) -> None:
        """Email the school's administrators, one message each.

        Goes to ``ADMIN_NOTIFICATION_EMAIL`` when set, otherwise to every
        active SCHOOL_ADMIN of the school.
        """
        from classroll.models import School
        from classroll.services.account_service import get_account_service

        school = await db.get(School, school_id)
        school_name = school.name if school else settings.app_name

        if settings.admin_notification_email:
            recipients = [(settings.admin_notification_email, "Administrator")]
        else:
            admins = await get_account_service().get_school_admins(db, school_id)
            recipients = [(admin.email, admin.first_name) for admin in admins]

        if not recipients:
            logger.warning(f"No administrator to email about '{title}' for school {school_id}")

        for address, name in recipients:
            await self._send_school_mail(
                address,
                school_name,
                f"[{school_name}] {title}",
                "admin_notification.html",
                admin_name=name,
                notification_type=notification_type,
                title=title,
                body=body,
                action_url=action_url,
            )


# Singleton instance
_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
