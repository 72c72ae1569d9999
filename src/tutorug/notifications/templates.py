"""
Notification templates for TutorUG.

Each template takes the params dict and returns (subject, html_body, text_body).
SMS senders use text_body only, so keep it under two SMS segments.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

GREEN = "#0F9D58"
TEXT_PRIMARY = "#1F2933"
TEXT_SECONDARY = "#52606D"
BORDER = "#E4E7EB"
SITE = "tutoruganda.com"

Template = Callable[[dict[str, Any]], tuple[str, str, str]]


def _base_layout(content: str, app_name: str = "TutorUG") -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 24px; background-color: #F5F7FA; font-family: Arial, Helvetica, sans-serif;">
    <div style="max-width: 600px; margin: 0 auto; background: #FFFFFF; border: 1px solid {BORDER}; border-radius: 10px; padding: 32px;">
        <h2 style="color: {GREEN}; margin: 0 0 24px 0;">{app_name}</h2>
        {content}
        <p style="color: {TEXT_SECONDARY}; font-size: 12px; margin-top: 32px;">Sent by {app_name} &middot; {SITE}</p>
    </div>
</body>
</html>"""


def _paragraph(text: str) -> str:
    return f'<p style="color: {TEXT_PRIMARY}; font-size: 16px; line-height: 1.6;">{text}</p>'


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d %B %Y")
    return str(value) if value else "the end of your current period"


def _name(params: dict[str, Any]) -> str:
    return params.get("first_name") or "Student"


def welcome(params: dict[str, Any]) -> tuple[str, str, str]:
    name = _name(params)
    trial_days = params.get("trial_days", 7)
    subject = "Welcome to TutorUG"
    text_body = (
        f"Welcome to TutorUG, {name}! Your {trial_days}-day free trial starts now. "
        f"Access Mathematics, Physics, Chemistry & more at {SITE}"
    )
    html_body = _base_layout(
        _paragraph(f"Hi {name},")
        + _paragraph(f"Your {trial_days}-day free trial starts now. Mathematics, Physics, Chemistry and more are waiting.")
    )
    return subject, html_body, text_body


def trial_ending(params: dict[str, Any]) -> tuple[str, str, str]:
    name = _name(params)
    days_left = params.get("days_left", 1)
    day_word = "day" if days_left == 1 else "days"
    subject = f"Your TutorUG trial ends in {days_left} {day_word}"
    text_body = (
        f"Hi {name}, your TutorUG free trial ends in {days_left} {day_word}. "
        f"Subscribe for 25,000 UGX/month to keep learning: {SITE}/subscribe"
    )
    html_body = _base_layout(
        _paragraph(f"Hi {name},")
        + _paragraph(f"Your free trial ends in <strong>{days_left} {day_word}</strong>.")
        + _paragraph(f'Subscribe at <a href="https://{SITE}/subscribe">{SITE}/subscribe</a> to keep your progress going.')
    )
    return subject, html_body, text_body


def subscription_confirmed(params: dict[str, Any]) -> tuple[str, str, str]:
    plan_name = params.get("plan_name", "subscription")
    end_date = _format_date(params.get("period_end_at"))
    subject = "Payment confirmed"
    text_body = (
        f"Payment confirmed! Your {plan_name} is now active until {end_date}. "
        f"Thank you for choosing TutorUG! {SITE}"
    )
    html_body = _base_layout(
        _paragraph(f"Hi {_name(params)},")
        + _paragraph(f"Your <strong>{plan_name}</strong> is now active until <strong>{end_date}</strong>.")
    )
    return subject, html_body, text_body


def subscription_expired(params: dict[str, Any]) -> tuple[str, str, str]:
    subject = "Your TutorUG access has expired"
    text_body = (
        "Your TutorUG subscription has expired. Renew today to continue your "
        f"learning journey! Visit {SITE}/subscribe"
    )
    html_body = _base_layout(
        _paragraph(f"Hi {_name(params)},")
        + _paragraph("Your access has expired. Renew today to continue where you left off.")
    )
    return subject, html_body, text_body


def subscription_cancelled(params: dict[str, Any]) -> tuple[str, str, str]:
    end_date = _format_date(params.get("period_end_at"))
    subject = "Subscription cancelled"
    text_body = (
        f"Subscription cancelled. You'll have access until {end_date}. "
        f"You can resubscribe anytime at {SITE}"
    )
    html_body = _base_layout(
        _paragraph(f"Hi {_name(params)},")
        + _paragraph(f"Your subscription is cancelled. You keep access until <strong>{end_date}</strong>.")
    )
    return subject, html_body, text_body


def renewal_reminder(params: dict[str, Any]) -> tuple[str, str, str]:
    end_date = _format_date(params.get("period_end_at"))
    subject = "Your TutorUG subscription is ending soon"
    text_body = f"Reminder: your TutorUG subscription expires on {end_date}. Renew now at {SITE}/subscribe"
    html_body = _base_layout(
        _paragraph(f"Hi {_name(params)},")
        + _paragraph(f"Your subscription expires on <strong>{end_date}</strong>. Renew now to keep learning.")
    )
    return subject, html_body, text_body


TEMPLATE_REGISTRY: dict[str, Template] = {
    "welcome": welcome,
    "trial_ending": trial_ending,
    "subscription_confirmed": subscription_confirmed,
    "subscription_expired": subscription_expired,
    "subscription_cancelled": subscription_cancelled,
    "renewal_reminder": renewal_reminder,
}


def render(template_id: str, params: dict[str, Any]) -> tuple[str, str, str]:
    """
    Render a template by id.

    Raises:
        ValueError: If the template id is unknown.
    """
    template = TEMPLATE_REGISTRY.get(template_id)
    if template is None:
        msg = f"Unknown template: {template_id}"
        raise ValueError(msg)
    return template(params)
