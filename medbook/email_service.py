"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from datetime import datetime
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    appointment_booked_patient_template,
    appointment_booked_practitioner_template,
    appointment_cancelled_template,
    email_verification_template,
    password_reset_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a dict with 'html' and 'errors' keys
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email using Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    html_content = compile_mjml_to_html(mjml_content)

    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


# ============================================
# Pre-built Email Templates for Common Events
# ============================================


async def send_verification_email(to: str, user_name: str, verify_url: str) -> dict:
    """Send the email ownership link after registration"""
    return await send_email(
        to=to,
        subject="Verify your email address",
        mjml_content=email_verification_template(user_name, verify_url),
    )


async def send_password_reset_email(to: str, reset_link: str) -> dict:
    """Send password reset instructions"""
    return await send_email(
        to=to,
        subject="Reset your password",
        mjml_content=password_reset_template(reset_link),
    )


async def send_practitioner_booking_email(
    to: str,
    practitioner_name: str,
    patient_name: str,
    start: datetime,
    end: datetime,
    notes: Optional[str],
    appointment_url: str,
    price: int,
) -> dict:
    return await send_email(
        to=to,
        subject="New consultation booked",
        mjml_content=appointment_booked_practitioner_template(
            practitioner_name, patient_name, start, end, notes, appointment_url, price
        ),
    )


async def send_patient_booking_email(
    to: str,
    patient_name: str,
    practitioner_name: str,
    start: datetime,
    end: datetime,
    notes: Optional[str],
    appointment_url: str,
) -> dict:
    return await send_email(
        to=to,
        subject="Your consultation is confirmed",
        mjml_content=appointment_booked_patient_template(
            patient_name, practitioner_name, start, end, notes, appointment_url
        ),
    )


async def send_cancellation_email(
    to: str,
    patient_name: str,
    practitioner_name: str,
    start: datetime,
    end: datetime,
    reason: Optional[str],
) -> dict:
    return await send_email(
        to=to,
        subject="Your consultation was cancelled",
        mjml_content=appointment_cancelled_template(
            patient_name, practitioner_name, start, end, reason
        ),
    )
