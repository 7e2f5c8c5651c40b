"""
Email delivery through Resend
Transactional emails are plain HTML built from a single branded layout
"""

import html
import logging
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY

BRAND_COLOR = "#1a5d3a"


class EmailNotConfiguredError(Exception):
    """Raised when no email provider is configured"""


def render_layout(title: str, body: str, cta_label: Optional[str] = None, cta_path: Optional[str] = None) -> str:
    """Wrap body text in the Casaora email layout. Text is HTML-escaped."""
    paragraphs = "".join(
        f"<p style=\"margin:0 0 12px\">{html.escape(line)}</p>" for line in body.split("\n") if line
    )
    button = ""
    if cta_label and cta_path:
        button = (
            f'<p><a href="{FRONTEND_URL}{cta_path}" '
            f'style="background:{BRAND_COLOR};color:#fff;padding:10px 18px;'
            f'border-radius:6px;text-decoration:none">{html.escape(cta_label)}</a></p>'
        )
    return (
        '<div style="font-family:Helvetica,Arial,sans-serif;max-width:560px;margin:auto">'
        f'<h2 style="color:{BRAND_COLOR}">{html.escape(title)}</h2>'
        f"{paragraphs}{button}"
        '<p style="color:#888;font-size:12px">Casaora</p>'
        "</div>"
    )


def send_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email via Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html_content: Rendered HTML body
        from_address: Optional custom from address

    Returns:
        Resend response dict
    """
    if not RESEND_API_KEY:
        raise EmailNotConfiguredError("RESEND_API_KEY missing")

    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {"from": sender, "to": recipients, "subject": subject, "html": html_content}
        )
        logger.info(f"✅ Email sent successfully: {subject}")
        return response
    except Exception as e:
        logger.error(f"❌ Failed to send email via Resend: {e}")
        raise


def send_notification_email(
    to: str, title: str, body: str, cta_label: Optional[str] = None, cta_path: Optional[str] = None
) -> dict:
    """Send a notification as an email using the standard layout"""
    return send_email(
        to=to,
        subject=f"{title} - Casaora",
        html_content=render_layout(title, body, cta_label, cta_path),
    )
