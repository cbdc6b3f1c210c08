import asyncio
import html
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Any, Dict, Optional

from app.core.config import settings
from app.models.otp import OtpPurpose

logger = logging.getLogger(__name__)

SUBJECTS = {
    OtpPurpose.REGISTER: "Your verification code",
    OtpPurpose.RESET_PASSWORD: "Reset your password",
}

ACTIONS = {
    OtpPurpose.REGISTER: "verify your email address",
    OtpPurpose.RESET_PASSWORD: "reset your password",
}


def smtp_configured() -> bool:
    return bool(settings.SMTP_HOST and settings.EMAIL_FROM)


def _deliver(to_email: str, message: str) -> None:
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
        server.starttls()
        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(settings.EMAIL_FROM, to_email, message)


async def send_email(to_email: str, subject: str, html_content: str, text_content: Optional[str] = None) -> bool:
    try:
        message = MIMEMultipart("alternative")
        message["From"] = settings.EMAIL_FROM
        message["To"] = to_email
        message["Subject"] = subject

        if text_content:
            message.attach(MIMEText(text_content, "plain"))
        message.attach(MIMEText(html_content, "html"))

        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(_deliver, to_email, message.as_string())

        logger.info(f"Email '{subject}' sent to {to_email}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Error sending email to {to_email}: {e}")
        return False


async def send_otp_email(
    email: str,
    otp: str,
    purpose: OtpPurpose,
    expires_in_minutes: int,
    name: Optional[str] = None,
) -> bool:
    purpose = OtpPurpose(purpose)
    subject = SUBJECTS.get(purpose, "Verification Code")
    action = ACTIONS.get(purpose, "continue")
    greeting = f"Hi {html.escape(name)}," if name else "Hi,"

    html_content = f"""
    <html>
    <body>
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <p>{greeting}</p>
            <p>Use the following code to {action}:</p>
            <div style="background-color: #f0f0f0; padding: 15px; text-align: center; font-size: 24px; font-weight: bold; letter-spacing: 5px; margin: 20px 0;">
                {otp}
            </div>
            <p>This code will expire in {expires_in_minutes} minutes.</p>
            <p>If you didn't request this code, you can safely ignore this email.</p>
        </div>
    </body>
    </html>
    """
    text_content = f"Your OTP is: {otp}. It expires in {expires_in_minutes} minutes."

    return await send_email(email, subject, html_content, text_content)


class EmailOtpDelivery:
    """Delivers codes by SMTP email. Context carries purpose, expires_in_minutes and an optional name."""

    async def send(self, identity: str, code: str, context: Dict[str, Any]) -> bool:
        purpose = OtpPurpose(context["purpose"])
        expires_in_minutes = context.get("expires_in_minutes", 5)

        if not smtp_configured():
            if settings.OTP_DEBUG_LOG:
                logger.warning(
                    f"OTP_DEBUG_LOG: {purpose.value} code for {identity} is {code} (remove OTP_DEBUG_LOG in production)"
                )
                return True
            logger.error("SMTP is not configured (SMTP_HOST / EMAIL_FROM); cannot deliver verification code")
            return False

        return await send_otp_email(identity, code, purpose, expires_in_minutes, name=context.get("name"))
