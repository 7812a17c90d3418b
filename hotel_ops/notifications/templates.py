"""Channel-specific rendering of queued notification templates."""

from __future__ import annotations

import json
from html import escape
from typing import Any, Mapping

from .models import EmailContent

DEFAULT_GUEST_NAME = "Valued Guest"
DEFAULT_HOTEL_NAME = "Hotel"

_WHATSAPP_TEMPLATES: dict[str, str] = {
    "precheckin_link": "Hello {guest}, please complete your pre-checkin here: {link}",
    "precheckin_reminder_1": "Hi {guest}, your stay is coming up tomorrow! Complete pre-checkin to save time: {link}",
    "precheckin_reminder_2": "Good morning {guest}! We look forward to welcoming you today. Quick pre-checkin: {link}",
    "guest_login_link": "Hello {guest}, use this secure link to open your stay at {hotel}: {link}",
}

# subject, heading, body paragraph, call to action
_EMAIL_TEMPLATES: dict[str, tuple[str, str, str, str]] = {
    "precheckin_link": (
        "Complete your Pre-checkin",
        "Complete Your Pre-Check-in",
        "Save time at reception by completing your pre-check-in before arrival. It takes less than a minute.",
        "Complete Pre-Check-in",
    ),
    "precheckin_reminder_1": (
        "Your Stay Starts Tomorrow!",
        "Your Stay Starts Tomorrow!",
        "We're excited to see you soon. To ensure a seamless arrival, please complete your pre-check-in now.",
        "Complete Pre-Check-in",
    ),
    "precheckin_reminder_2": (
        "Welcome to {hotel}!",
        "Your Room is Ready!",
        "We are looking forward to welcoming you today. Skip the paperwork at the front desk by completing your pre-check-in below.",
        "Complete Pre-Check-in",
    ),
    "guest_login_link": (
        "Your sign-in link for {hotel}",
        "Access Your Stay",
        "Use the button below to sign in to your guest portal. The link can be used once.",
        "Open My Stay",
    ),
}

_EMAIL_LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>{title}</title></head>
<body style="margin:0;padding:0;background:#f4f6fb;font-family:Arial,Helvetica,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0">
    <tr><td align="center" style="padding:30px 0;">
      <table width="600" cellpadding="0" cellspacing="0" style="background:#ffffff;border-radius:12px;">
        <tr><td style="padding:32px;text-align:center;color:#333;">
          <h2 style="margin-top:0;">{heading}</h2>
          <p style="font-size:16px;line-height:1.6;">Dear <strong>{guest}</strong>,<br>{body}</p>
          <a href="{link}" style="display:inline-block;padding:14px 32px;background:#ff7a18;color:#ffffff;text-decoration:none;border-radius:50px;">{cta}</a>
          <p style="margin-top:28px;font-size:13px;color:#777;">If the button does not work, copy and paste this link:<br>{link}</p>
        </td></tr>
        <tr><td style="background:#fafbff;text-align:center;padding:20px;font-size:12px;color:#888;">
          We look forward to welcoming you.<br><strong>{hotel}</strong>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>
"""


def resolve_link(payload: Mapping[str, Any], public_base_url: str) -> str:
    link = payload.get("link")
    if link:
        return str(link)
    return f"{public_base_url.rstrip('/')}/precheckin/{payload.get('token') or ''}"


def render_whatsapp(
    template_code: str,
    payload: Mapping[str, Any],
    *,
    guest_name: str | None,
    hotel_name: str | None = None,
    public_base_url: str,
) -> str:
    template = _WHATSAPP_TEMPLATES.get(template_code)
    if template is None:
        return f"Notification: {json.dumps(dict(payload), default=str, sort_keys=True)}"
    return template.format(
        guest=guest_name or DEFAULT_GUEST_NAME,
        hotel=hotel_name or DEFAULT_HOTEL_NAME,
        link=resolve_link(payload, public_base_url),
    )


def render_email(
    template_code: str,
    payload: Mapping[str, Any],
    *,
    guest_name: str | None,
    hotel_name: str | None,
    public_base_url: str,
) -> EmailContent:
    hotel = hotel_name or DEFAULT_HOTEL_NAME
    parts = _EMAIL_TEMPLATES.get(template_code)
    if parts is None:
        subject = f"Update from {hotel}"
        heading, body, cta = subject, "There is an update about your upcoming stay.", "View Details"
    else:
        subject_template, heading, body, cta = parts
        subject = subject_template.format(hotel=hotel)

    html = _EMAIL_LAYOUT.format(
        title=escape(subject),
        heading=escape(heading),
        guest=escape(guest_name or DEFAULT_GUEST_NAME),
        body=escape(body),
        link=escape(resolve_link(payload, public_base_url), quote=True),
        cta=escape(cta),
        hotel=escape(hotel),
    )
    return EmailContent(subject=subject, html=html)
