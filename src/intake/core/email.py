"""
Email Service using Resend

Transactional email for the intake flow: verification codes and the
"application received" confirmation. Without RESEND_API_KEY, emails are
logged instead of sent so local development works offline.
"""

import asyncio
import logging
from html import escape

import resend

from intake.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_BASE_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #111827; margin-bottom: 24px; }
    .code { font-size: 32px; letter-spacing: 8px; font-weight: bold; margin: 24px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _wrap(body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><style>{_BASE_STYLE}</style></head>
    <body><div class="container">{body}</div></body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged in development)
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_verification_code(to_email: str, code: str, expires_minutes: int) -> bool:
    """Send the 6-digit verification code."""
    html_content = _wrap(
        f"""
        <h1 class="header">Verify your email</h1>
        <p>Enter this code to continue your application:</p>
        <p class="code">{escape(code)}</p>
        <p><strong>This code expires in {expires_minutes} minutes.</strong></p>
        <div class="footer">
            <p>If you didn't start an application, you can safely ignore this email.</p>
        </div>
        """
    )
    return await send_email(
        to_email=to_email,
        subject=f"Your verification code: {code}",
        html_content=html_content,
    )


async def send_submission_received(to_email: str, applicant_name: str) -> bool:
    """Confirm to the applicant that their submission was stored."""
    safe_name = escape(applicant_name)
    html_content = _wrap(
        f"""
        <h1 class="header">Application received</h1>
        <p>Hi {safe_name},</p>
        <p>Thanks for applying. We've received your profile and video, and our
        reviewers will take a look soon.</p>
        <p>You'll hear from us by email once a decision has been made.</p>
        <div class="footer">
            <p><a href="{escape(settings.frontend_url)}">{escape(settings.frontend_url)}</a></p>
        </div>
        """
    )
    return await send_email(
        to_email=to_email,
        subject="We received your application",
        html_content=html_content,
    )
