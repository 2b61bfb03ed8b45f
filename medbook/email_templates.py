"""
MJML Email Templates
All email templates using MJML for responsive, cross-client compatibility
"""

from datetime import datetime
from html import escape
from typing import Optional

from .config import FRONTEND_URL, PAYMENT_CURRENCY

# App theme colors - Teal/Slate color scheme
THEME = {
    "primary": "#0ea5e9",
    "primary_dark": "#0284c7",
    "primary_light": "#e0f2fe",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#14b8a6",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}


def format_slot(start: datetime, end: datetime) -> str:
    """Human readable appointment window, e.g. 2026-10-21 10:00 – 10:30 (UTC)"""
    return f"{start:%Y-%m-%d %H:%M} – {end:%H:%M} (UTC)"


def format_money(amount_minor: int, currency: str = PAYMENT_CURRENCY) -> str:
    return f"{amount_minor / 100:.2f} {currency}"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <!-- Main Content -->
        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              © MedBook. All rights reserved.
            </mj-text>
            <mj-text align="center" font-size="12px" color="#94a3b8" padding="12px 0 0 0">
              You're receiving this because you have an account with MedBook.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def email_verification_template(user_name: str, verify_url: str) -> str:
    """Email verification link MJML template"""
    content = f"""
    <mj-text>
      Hi {escape(user_name)},
    </mj-text>

    <mj-text>
      Please confirm your email address to activate your account. This link will expire in 1 hour.
    </mj-text>

    <mj-text color="{THEME['text_muted']}" font-size="14px">
      If you didn't create an account, you can safely ignore this email.
    </mj-text>
    """

    return get_base_template(
        title="Verify Your Email Address",
        preview_text="Please confirm your email to secure your account",
        content_sections=content,
        cta_url=verify_url,
        cta_label="Verify Email",
    )


def password_reset_template(reset_link: str) -> str:
    """Password reset MJML template"""
    content = f"""
    <mj-text>
      We received a request to reset your password.
    </mj-text>

    <mj-text>
      Click the button below to create a new password. This link will expire in 1 hour.
    </mj-text>

    <mj-text font-size="13px" color="{THEME['text_muted']}">
      If you didn't request this, you can safely ignore this email. Your password won't be changed.
    </mj-text>
    """

    return get_base_template(
        title="Reset Your Password",
        preview_text="Reset your MedBook password",
        content_sections=content,
        cta_url=reset_link,
        cta_label="Reset Password",
    )


def _appointment_details(start: datetime, end: datetime, notes: Optional[str], appointment_url: str) -> str:
    notes_row = ""
    if notes:
        notes_row = f"<strong>Notes:</strong> {escape(notes)}<br/>"

    return f"""
    <mj-text padding="16px 0" container-background-color="{THEME['primary_light']}">
      <strong>When:</strong> {format_slot(start, end)}<br/>
      {notes_row}
      <strong>Join link:</strong> <a href="{appointment_url}" style="color: {THEME['primary_dark']};">{appointment_url}</a>
    </mj-text>
    """


def appointment_booked_practitioner_template(
    practitioner_name: str,
    patient_name: str,
    start: datetime,
    end: datetime,
    notes: Optional[str],
    appointment_url: str,
    price: int,
) -> str:
    """New consultation notice for the practitioner"""
    content = f"""
    <mj-text>
      Hi {escape(practitioner_name)},
    </mj-text>

    <mj-text>
      {escape(patient_name)} has booked and paid for a consultation with you ({format_money(price)}).
    </mj-text>

    {_appointment_details(start, end, notes, appointment_url)}
    """

    return get_base_template(
        title="New Consultation",
        preview_text=f"New consultation on {start:%Y-%m-%d %H:%M}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/appointments",
        cta_label="View Appointments",
    )


def appointment_booked_patient_template(
    patient_name: str,
    practitioner_name: str,
    start: datetime,
    end: datetime,
    notes: Optional[str],
    appointment_url: str,
) -> str:
    """Booking confirmation for the patient"""
    content = f"""
    <mj-text>
      Hi {escape(patient_name)},
    </mj-text>

    <mj-text>
      Your consultation with {escape(practitioner_name)} is confirmed. Use the link below to join at the scheduled time.
    </mj-text>

    {_appointment_details(start, end, notes, appointment_url)}
    """

    return get_base_template(
        title="Consultation Confirmed",
        preview_text=f"Your consultation on {start:%Y-%m-%d %H:%M} is confirmed",
        content_sections=content,
        cta_url=appointment_url,
        cta_label="Join Consultation",
    )


def appointment_cancelled_template(
    patient_name: str,
    practitioner_name: str,
    start: datetime,
    end: datetime,
    reason: Optional[str],
) -> str:
    """Cancellation notice sent to the patient when the practitioner cancels"""
    reason_text = escape(reason) if reason else "No reason was given."
    content = f"""
    <mj-text>
      Hi {escape(patient_name)},
    </mj-text>

    <mj-text>
      {escape(practitioner_name)} has cancelled your consultation scheduled for {format_slot(start, end)}.
    </mj-text>

    <mj-text padding="16px 0" container-background-color="{THEME['background']}">
      <strong>Reason:</strong> {reason_text}
    </mj-text>
    """

    return get_base_template(
        title="Your Consultation Was Cancelled",
        preview_text="Your consultation was cancelled",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/doctors",
        cta_label="Book Another Consultation",
    )
