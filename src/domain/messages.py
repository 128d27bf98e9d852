"""
Notification content - Structured messages handed to the Notifier.

Only subject, a minimal HTML body and a plain-text body are produced here.
Styling and transport belong to the Notifier implementation.
"""

import logging
from dataclasses import dataclass
from html import escape
from urllib.parse import quote

from .ports import Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    subject: str
    html: str
    text: str


def _html(*paragraphs: str) -> str:
    return "".join(f"<p>{p}</p>" for p in paragraphs)


def verification_message(username: str, code: str, verify_url: str) -> Message:
    return Message(
        subject="Verify your OwlRSVP account",
        html=_html(
            f"Hi {escape(username)},",
            f"Your verification code is <strong>{escape(code)}</strong>.",
            f'Or <a href="{escape(verify_url)}">verify your email address</a>.',
            "The code expires in 24 hours.",
        ),
        text=(
            f"Hi {username},\n\nYour verification code is {code}.\n"
            f"Or verify your email address: {verify_url}\n\nThe code expires in 24 hours.\n"
        ),
    )


def password_reset_message(username: str, reset_url: str) -> Message:
    return Message(
        subject="Reset your OwlRSVP password",
        html=_html(
            f"Hi {escape(username)},",
            f'<a href="{escape(reset_url)}">Reset your password</a>.',
            "This link expires in 1 hour. If you did not ask for a reset, ignore this email.",
        ),
        text=(
            f"Hi {username},\n\nReset your password: {reset_url}\n\n"
            "This link expires in 1 hour. If you did not ask for a reset, ignore this email.\n"
        ),
    )


def magic_link_message(username: str, magic_link_url: str) -> Message:
    return Message(
        subject="Your OwlRSVP Magic Login Link",
        html=_html(
            f"Hi {escape(username)},",
            f'<a href="{escape(magic_link_url)}">Log in to OwlRSVP</a>.',
            "This link expires in 1 hour and can be used once.",
        ),
        text=(
            f"Hi {username},\n\nLog in to OwlRSVP: {magic_link_url}\n\n"
            "This link expires in 1 hour and can be used once.\n"
        ),
    )


def event_access_message(name: str, event_title: str, access_code: str, event_url: str) -> Message:
    return Message(
        subject=f"Your Access Code for {event_title}",
        html=_html(
            f"Hi {escape(name)},",
            f"Your access code for <strong>{escape(event_title)}</strong> is "
            f"<strong>{escape(access_code)}</strong>.",
            f'<a href="{escape(event_url)}">Open the event dashboard</a>.',
            "The code is valid for 7 days.",
        ),
        text=(
            f"Hi {name},\n\nYour access code for {event_title} is {access_code}.\n"
            f"Open the event dashboard: {event_url}\n\nThe code is valid for 7 days.\n"
        ),
    )


def query_value(value: str) -> str:
    """URL-encode a value for use in a query string."""
    return quote(value, safe="")


def deliver(notifier: Notifier, to_address: str, message: Message) -> str | None:
    """
    Send a message, downgrading any delivery failure to a warning.

    Returns:
        None when delivered, otherwise a warning string for the caller
    """
    try:
        notifier.send(to_address, message.subject, message.html, message.text)
    except Exception as e:
        logger.warning("Notifier failed for %r to %s: %s", message.subject, to_address, e)
        return "Message could not be delivered"
    return None
