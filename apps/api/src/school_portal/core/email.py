"""
Email Service using Resend

Transactional e-mail for one-time codes, account credentials, applicant
decisions and scheduling notices.

Every send has a client-side timeout (settings.email_timeout_seconds). A
timeout or provider error is logged and reported as False; callers treat
e-mail as best-effort.
"""

import asyncio
import logging
from datetime import date
from html import escape

import resend

from school_portal.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_STYLE = """
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1a365d; margin-bottom: 24px; }
            .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .success-box { background-color: #ecfdf5; border: 1px solid #a7f3d0; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .reason-box { background-color: #fef2f2; border: 1px solid #fecaca; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .code { font-size: 32px; letter-spacing: 8px; font-weight: bold; color: #1a365d; }
            .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(title: str, body: str) -> str:
    """Wrap body HTML in the shared layout. Callers escape their own inputs."""
    safe_school = escape(settings.school_name)
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{escape(title)}</h1>
            {body}
            <div class="footer">
                <p>{safe_school}</p>
            </div>
        </div>
    </body>
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
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    params: resend.Emails.SendParams = {
        "from": settings.email_from,
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    }

    try:
        # Sync Resend call in a worker thread, bounded by the client timeout
        email = await asyncio.wait_for(
            asyncio.to_thread(resend.Emails.send, params),
            timeout=settings.email_timeout_seconds,
        )
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except TimeoutError:
        logger.error(
            f"Timed out sending email to {to_email} after {settings.email_timeout_seconds}s"
        )
        return False
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_otp_code(
    to_email: str,
    recipient_name: str,
    code: str,
    purpose: str,
    expires_minutes: int = 5,
) -> bool:
    """Send a one-time verification code."""
    safe_name = escape(recipient_name)
    safe_purpose = escape(purpose)
    body = f"""
            <p>Hello {safe_name},</p>
            <p>Use this code to {safe_purpose}:</p>
            <div class="info-box"><p class="code">{escape(code)}</p></div>
            <p><strong>This code expires in {expires_minutes} minutes.</strong> It can only be used once.</p>
            <p>If you did not request this code, you can safely ignore this email.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Your {settings.school_name} verification code",
        html_content=_render("Your Verification Code", body),
    )


async def send_account_credentials(
    to_email: str,
    recipient_name: str,
    temporary_password: str,
    role_label: str,
) -> bool:
    """Send login details for a newly provisioned account."""
    safe_name = escape(recipient_name)
    login_url = f"{settings.frontend_url}/login"
    body = f"""
            <p>Hello {safe_name},</p>
            <p>An {escape(role_label)} account has been created for you.</p>
            <div class="info-box">
                <p><strong>Email:</strong> {escape(to_email)}</p>
                <p><strong>Temporary password:</strong> {escape(temporary_password)}</p>
            </div>
            <p>You will be asked to change this password the first time you sign in.</p>
            <a href="{login_url}" class="button">Sign In</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Your {settings.school_name} {role_label} account",
        html_content=_render("Welcome Aboard", body),
    )


async def send_decision_email(
    to_email: str,
    applicant_name: str,
    approved: bool,
    reason: str | None = None,
) -> bool:
    """Send the final hiring decision to an applicant."""
    safe_name = escape(applicant_name)
    safe_school = escape(settings.school_name)

    if approved:
        title = "Congratulations!"
        body = f"""
            <p>Hello {safe_name},</p>
            <div class="success-box">
                <p>We are pleased to inform you that your application to <strong>{safe_school}</strong> has been approved.</p>
            </div>
            <p>Our team will contact you shortly with onboarding steps.</p>
        """
        subject = f"Your application to {settings.school_name} has been approved"
    else:
        title = "Update on Your Application"
        reason_html = ""
        if reason:
            reason_html = f"""
            <div class="reason-box">
                <p><strong>Notes from the review panel:</strong></p>
                <p>{escape(reason)}</p>
            </div>
            """
        body = f"""
            <p>Hello {safe_name},</p>
            <p>Thank you for your interest in <strong>{safe_school}</strong>. After careful review, we are unable to move forward with your application at this time.</p>
            {reason_html}
            <p>Your application data will be removed from our system in 30 days.</p>
        """
        subject = f"Update on your application to {settings.school_name}"

    return await send_email(
        to_email=to_email,
        subject=subject,
        html_content=_render(title, body),
    )


async def send_schedule_notice(
    to_email: str,
    applicant_name: str,
    session_label: str,
    action: str,
    scheduled_date: date | None = None,
    scheduled_time: str | None = None,
    mode: str | None = None,
    location: str | None = None,
) -> bool:
    """
    Tell an applicant that an interview or demo was scheduled, moved or cancelled.

    Args:
        session_label: "interview" or "teaching demo"
        action: "scheduled", "rescheduled" or "cancelled"
    """
    safe_name = escape(applicant_name)
    safe_label = escape(session_label)
    safe_action = escape(action)

    details = ""
    if action != "cancelled":
        rows = [
            ("Date", scheduled_date.isoformat() if scheduled_date else None),
            ("Time", scheduled_time),
            ("Mode", mode),
            ("Location", location),
        ]
        details = "".join(
            f"<p><strong>{label}:</strong> {escape(value)}</p>" for label, value in rows if value
        )
        details = f'<div class="info-box">{details}</div>'

    body = f"""
            <p>Hello {safe_name},</p>
            <p>Your {safe_label} has been {safe_action}.</p>
            {details}
            <p>Please check your applicant portal for the latest details.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Your {session_label} has been {action}",
        html_content=_render(f"{session_label.title()} {action.title()}", body),
    )


async def send_admin_message(
    to_email: str,
    subject: str,
    message: str,
    sender_name: str,
) -> bool:
    """Deliver a message composed in the admin mailbox."""
    paragraphs = "".join(f"<p>{escape(line)}</p>" for line in message.splitlines() if line.strip())
    body = f"""
            {paragraphs}
            <p>{escape(sender_name)}</p>
    """
    return await send_email(
        to_email=to_email,
        subject=subject,
        html_content=_render(subject, body),
    )
