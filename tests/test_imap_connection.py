"""
Unit tests for IMAPConnection and the date-window helpers

SECURITY STORY: The IMAP connection is where credentials leave the process
and untrusted bytes come in. Failure paths must return cleanly so the run can
report a connectivity error instead of crashing mid-batch.

PATTERN RECOGNITION: All network I/O (imaplib, ssl) is mocked so the tests
run without real credentials or network access.
"""

import imaplib
import ssl
import unittest
from datetime import datetime
from email.message import EmailMessage
from unittest.mock import MagicMock, patch

from invoice_archiver.modules.imap_connection import (
    IMAPConnection,
    build_search_criteria,
    date_window,
    imap_date,
)
from invoice_archiver.utils.config import MailboxConfig


def _make_config(**overrides) -> MailboxConfig:
    """Return a minimal MailboxConfig suitable for unit tests."""
    defaults = dict(
        imap_server="imap.corp.example",
        imap_port=993,
        username="archiver@corp.example",
        password="secret",
        folder="INBOX",
        use_ssl=True,
        verify_ssl=True,
    )
    defaults.update(overrides)
    return MailboxConfig(**defaults)


def _raw_message(subject="Invoice March") -> bytes:
    msg = EmailMessage()
    msg["From"] = "billing@vendor.example"
    msg["To"] = "invoices@corp.example"
    msg["Subject"] = subject
    msg.set_content("Invoice attached")
    return msg.as_bytes()


class TestDateWindow(unittest.TestCase):

    def test_window_covers_whole_days(self):
        start, end = date_window(datetime(2024, 3, 15, 10, 0), 3, 1)

        self.assertEqual(start, datetime(2024, 3, 12, 0, 0))
        self.assertEqual(end.date(), datetime(2024, 3, 14).date())
        self.assertEqual((end.hour, end.minute, end.second), (23, 59, 59))

    def test_default_window_is_yesterday(self):
        start, end = date_window(datetime(2024, 3, 1, 8, 0), 1, 1)
        self.assertEqual(start, datetime(2024, 2, 29, 0, 0))
        self.assertEqual(end.date(), datetime(2024, 2, 29).date())

    def test_imap_date_is_english(self):
        self.assertEqual(imap_date(datetime(2024, 3, 5)), "05-Mar-2024")
        self.assertEqual(imap_date(datetime(2024, 12, 25)), "25-Dec-2024")

    def test_search_criteria_end_is_exclusive(self):
        start, end = date_window(datetime(2024, 3, 8, 9, 0), 3, 1)
        self.assertEqual(build_search_criteria(start, end), "(SINCE 05-Mar-2024 BEFORE 08-Mar-2024)")


class TestIMAPConnectionConnect(unittest.TestCase):
    """Tests for IMAPConnection.connect()"""

    def setUp(self):
        self.config = _make_config()
        self.conn = IMAPConnection(self.config)
        self.conn.logger = MagicMock()

    @patch("invoice_archiver.modules.imap_connection.create_secure_ssl_context")
    @patch("invoice_archiver.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_connect_success_ssl(self, mock_imap4_ssl, mock_ssl_ctx):
        mock_imap = MagicMock()
        mock_imap4_ssl.return_value = mock_imap

        self.assertTrue(self.conn.connect())

        mock_imap4_ssl.assert_called_once_with(
            self.config.imap_server,
            self.config.imap_port,
            ssl_context=mock_ssl_ctx.return_value,
            timeout=30,
        )
        mock_imap.login.assert_called_once_with(self.config.username, self.config.password)
        self.assertEqual(self.conn.connection, mock_imap)

    @patch("invoice_archiver.modules.imap_connection.create_secure_ssl_context")
    @patch("invoice_archiver.modules.imap_connection.imaplib.IMAP4")
    def test_connect_starttls(self, mock_imap4, mock_ssl_ctx):
        self.conn.config = _make_config(use_ssl=False, imap_port=143)

        self.assertTrue(self.conn.connect())

        mock_imap4.return_value.starttls.assert_called_once_with(ssl_context=mock_ssl_ctx.return_value)

    @patch("invoice_archiver.modules.imap_connection.create_secure_ssl_context")
    @patch("invoice_archiver.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_verification_can_be_disabled(self, mock_imap4_ssl, mock_ssl_ctx):
        self.conn.config = _make_config(verify_ssl=False)

        self.conn.connect()

        context = mock_ssl_ctx.return_value
        self.assertFalse(context.check_hostname)
        self.assertEqual(context.verify_mode, ssl.CERT_NONE)

    @patch("invoice_archiver.modules.imap_connection.create_secure_ssl_context")
    @patch("invoice_archiver.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_login_failure_returns_false(self, mock_imap4_ssl, mock_ssl_ctx):
        mock_imap4_ssl.return_value.login.side_effect = imaplib.IMAP4.error("AUTHENTICATIONFAILED")
        self.assertFalse(self.conn.connect())

    @patch("invoice_archiver.modules.imap_connection.create_secure_ssl_context")
    @patch("invoice_archiver.modules.imap_connection.imaplib.IMAP4_SSL")
    def test_network_failure_returns_false(self, mock_imap4_ssl, mock_ssl_ctx):
        mock_imap4_ssl.side_effect = OSError("Network is unreachable")
        self.assertFalse(self.conn.connect())

    def test_disconnect_tolerates_closed_connection(self):
        self.conn.connection = MagicMock()
        self.conn.connection.logout.side_effect = imaplib.IMAP4.abort("socket closed")

        self.conn.disconnect()

        self.assertIsNone(self.conn.connection)


class TestIMAPConnectionMailbox(unittest.TestCase):
    """Folder selection, search and fetch"""

    def setUp(self):
        self.conn = IMAPConnection(_make_config(), rate_limit_delay=0)
        self.conn.logger = MagicMock()
        self.conn.connection = MagicMock()

    def test_select_folder_is_read_only(self):
        self.conn.connection.select.return_value = ("OK", [b"3"])
        self.assertTrue(self.conn.select_folder("INBOX"))
        self.conn.connection.select.assert_called_once_with("INBOX", readonly=True)

    def test_select_folder_failure(self):
        self.conn.connection.select.return_value = ("NO", [b"no such folder"])
        self.assertFalse(self.conn.select_folder("Missing"))

    def test_select_without_connection(self):
        self.conn.connection = None
        self.assertFalse(self.conn.select_folder("INBOX"))

    def test_search_window(self):
        self.conn.connection.search.return_value = ("OK", [b"4 5 9"])

        ids = self.conn.search_window(datetime(2024, 3, 5), datetime(2024, 3, 7, 23, 59))

        self.assertEqual(ids, [b"4", b"5", b"9"])
        self.conn.connection.search.assert_called_once_with(None, "(SINCE 05-Mar-2024 BEFORE 08-Mar-2024)")

    def test_search_failure_returns_empty(self):
        self.conn.connection.search.side_effect = imaplib.IMAP4.abort("connection lost")
        self.assertEqual(self.conn.search_window(datetime(2024, 3, 5), datetime(2024, 3, 7)), [])

    def test_fetch_parses_internal_date(self):
        raw = _raw_message()

        def fetch(ids, query):
            if query == "(RFC822.SIZE)":
                return "OK", [b"4 (RFC822.SIZE 512)"]
            header = b'4 (INTERNALDATE "05-Mar-2024 10:00:00 +0000" RFC822 {%d}' % len(raw)
            return "OK", [(header, raw), b")"]

        self.conn.connection.fetch.side_effect = fetch

        messages = self.conn.fetch_messages([b"4"])

        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].sequence_number, 4)
        self.assertEqual(messages[0].subject, "Invoice March")
        self.assertEqual(messages[0].recipients, "invoices@corp.example")
        received = messages[0].received
        self.assertEqual((received.year, received.month), (2024, 3))
        self.assertIn(received.day, (4, 5, 6))

    def test_oversized_messages_are_not_downloaded(self):
        self.conn.max_email_size = 1000
        self.conn.connection.fetch.return_value = ("OK", [b"4 (RFC822.SIZE 5000)"])

        self.assertEqual(self.conn.fetch_messages([b"4"]), [])
        self.conn.connection.fetch.assert_called_once_with(b"4", "(RFC822.SIZE)")

    @patch("invoice_archiver.modules.imap_connection.time.sleep")
    def test_fetch_is_batched(self, mock_sleep):
        ids = [str(i).encode() for i in range(1, 24)]
        self.conn._fetch_batch = MagicMock(return_value=[])

        self.conn.fetch_messages(ids)

        self.assertEqual(self.conn._fetch_batch.call_count, 3)
        self.assertEqual(mock_sleep.call_count, 2)
        self.assertEqual(len(self.conn._fetch_batch.call_args_list[-1][0][0]), 3)

    def test_unparseable_fetch_item_is_skipped(self):
        self.assertIsNone(self.conn._parse_fetch_item(b")"))
        self.assertIsNone(self.conn._parse_fetch_item((b"garbage", b"")))


if __name__ == "__main__":
    unittest.main()
