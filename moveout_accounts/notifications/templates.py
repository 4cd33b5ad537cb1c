"""Transactional email templates for account lifecycle transitions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape


@dataclass(slots=True)
class EmailContent:
    subject: str
    text: str
    html: str


def humanize_minutes(minutes: int) -> str:
    """Render a minute count as the largest whole unit, e.g. ``3 days``."""
    for size, unit in ((1440, "day"), (60, "hour")):
        if minutes >= size:
            count = minutes // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


def _greeting(display_name: str) -> str:
    return f"Hi {display_name}," if display_name else "Hi,"


def _shell(title: str, paragraphs: list[str]) -> str:
    body = "".join(f'<p style="margin:0 0 12px;">{p}</p>' for p in paragraphs)
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="UTF-8">'
        f"<title>{escape(title)}</title></head>"
        '<body style="margin:0; padding:32px 16px; font-family:Helvetica, Arial, sans-serif; color:#1f2937;">'
        '<table role="presentation" width="100%" style="max-width:560px; margin:0 auto;">'
        f'<tr><td><h2 style="margin:0 0 16px;">{escape(title)}</h2>{body}'
        '<p style="margin:24px 0 0; color:#6b7280; font-size:12px;">MoveOut</p>'
        "</td></tr></table></body></html>"
    )


def inactivity_warning_email(
    display_name: str, last_activity: datetime, minutes_remaining: int, login_url: str
) -> EmailContent:
    remaining = humanize_minutes(minutes_remaining)
    last_seen = last_activity.strftime("%Y-%m-%d %H:%M UTC")
    subject = f"Your MoveOut account will be deactivated in {remaining}"
    text = (
        f"{_greeting(display_name)}\n\n"
        f"We have not seen any activity on your MoveOut account since {last_seen}.\n"
        f"It will be deactivated in {remaining} unless you sign in.\n\n"
        f"Sign in here to keep it active: {login_url}\n"
    )
    html = _shell(
        "Inactivity warning",
        [
            escape(_greeting(display_name)),
            f"We have not seen any activity on your MoveOut account since <strong>{escape(last_seen)}</strong>.",
            f"It will be deactivated in <strong>{escape(remaining)}</strong> unless you sign in.",
            f'<a href="{escape(login_url)}">Sign in to keep your account active</a>',
        ],
    )
    return EmailContent(subject=subject, text=text, html=html)


def deactivation_email(display_name: str, login_url: str) -> EmailContent:
    subject = "Account Deactivation Confirmation"
    text = (
        f"{_greeting(display_name)}\n\n"
        "Your account has been deactivated. Your boxes and labels are kept.\n"
        f"If you wish to reactivate your account, please log in: {login_url}\n"
    )
    html = _shell(
        "Account deactivated",
        [
            escape(_greeting(display_name)),
            "Your account has been deactivated. Your boxes and labels are kept.",
            f'If you wish to reactivate your account, please <a href="{escape(login_url)}">log in</a>.',
        ],
    )
    return EmailContent(subject=subject, text=text, html=html)


def deletion_email(display_name: str) -> EmailContent:
    subject = "Your MoveOut account has been deleted"
    text = (
        f"{_greeting(display_name)}\n\n"
        "Your account and all of its boxes, labels, contacts and uploaded files have been deleted.\n"
        "This cannot be undone. You are welcome to sign up again at any time.\n"
    )
    html = _shell(
        "Account deleted",
        [
            escape(_greeting(display_name)),
            "Your account and all of its boxes, labels, contacts and uploaded files have been deleted.",
            "This cannot be undone. You are welcome to sign up again at any time.",
        ],
    )
    return EmailContent(subject=subject, text=text, html=html)
