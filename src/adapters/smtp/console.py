"""
Console notifier adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notifier port, logging messages to stdout for development.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints the plain-text body, which
    carries the codes and links a real email would.
    """

    def send(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        """
        Log the message (simulates email delivery).

        In production, this would be replaced with an SMTP adapter.
        Logged at INFO level to be visible in docker-compose logs.

        Args:
            to_address: Recipient email address
            subject: Message subject
            html_body: HTML rendition (not logged)
            text_body: Plain-text rendition
        """
        logger.info("[EMAIL] To: %s Subject: %s\n%s", to_address, subject, text_body)
