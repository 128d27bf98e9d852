"""
Unit tests for ConsoleNotifier adapter.

Tests verify the console notifier implements the Notifier protocol
and logs the plain-text body in the expected format.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.adapters.smtp.console import ConsoleNotifier
from src.domain.messages import deliver, verification_message


class TestConsoleNotifierProtocol:
    """Tests for Notifier protocol compliance."""

    def test_implements_notifier_protocol(self) -> None:
        """ConsoleNotifier implements Notifier protocol."""
        from src.domain.ports import Notifier

        notifier = ConsoleNotifier()
        assert callable(notifier.send)

        def accepts_notifier(n: Notifier) -> None:
            pass

        accepts_notifier(notifier)

    def test_no_explicit_inheritance(self) -> None:
        """ConsoleNotifier uses structural subtyping, not inheritance."""
        bases = ConsoleNotifier.__bases__
        assert bases == (object,), f"Expected only object as base, got {bases}"


class TestSend:
    def test_send_logs_at_info(self, caplog: pytest.LogCaptureFixture) -> None:
        notifier = ConsoleNotifier()

        with caplog.at_level(logging.INFO):
            notifier.send("test@example.com", "Hello", "<p>hi</p>", "hi")

        assert len(caplog.records) == 1
        assert caplog.records[0].levelno == logging.INFO

    def test_send_format(self, caplog: pytest.LogCaptureFixture) -> None:
        """Log line carries recipient, subject and the plain-text body."""
        notifier = ConsoleNotifier()

        with caplog.at_level(logging.INFO):
            notifier.send("user@example.com", "Verify", "<p>Code 123456</p>", "Code 123456")

        assert "[EMAIL]" in caplog.text
        assert "To: user@example.com" in caplog.text
        assert "Subject: Verify" in caplog.text
        assert "Code 123456" in caplog.text
        assert "<p>" not in caplog.text

    def test_deliver_through_console_has_no_warning(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        message = verification_message("alice", "000123", "http://localhost/verify")

        with caplog.at_level(logging.INFO):
            warning = deliver(ConsoleNotifier(), "a@x.com", message)

        assert warning is None
        assert "000123" in caplog.text


class TestThreadSafety:
    def test_concurrent_sends_all_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Concurrent calls produce complete, separate log records."""
        notifier = ConsoleNotifier()

        with caplog.at_level(logging.INFO), ThreadPoolExecutor(max_workers=5) as executor:
            futures = [
                executor.submit(notifier.send, f"user{i}@example.com", "S", "", f"{i:06d}")
                for i in range(10)
            ]
            for f in futures:
                f.result()

        assert len(caplog.records) == 10
        for record in caplog.records:
            assert "[EMAIL]" in record.message
            assert "Subject: S" in record.message
