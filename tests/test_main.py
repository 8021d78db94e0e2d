"""
Integration tests for InvoiceArchivePipeline

PATTERN RECOGNITION: IMAPConnection is replaced with a MagicMock that serves
raw RFC822 bytes through the real MailMessageParser, so a run goes through
search, parse, walk and record writing exactly as in production.
"""

import json
import logging
import tempfile
import unittest
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from unittest.mock import MagicMock, patch

from invoice_archiver.main import InvoiceArchivePipeline
from invoice_archiver.modules.errors import ConnectivityError
from invoice_archiver.modules.mail_message import MailMessageParser
from invoice_archiver.utils.config import Config


def _raw_invoice(subject, to="invoices@corp.example") -> bytes:
    msg = EmailMessage()
    msg["From"] = "Vendor Billing <billing@vendor.example>"
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content("Total: 42 EUR")
    msg.add_attachment(b"%PDF-1.4 invoice", maintype="application", subtype="pdf", filename="invoice.pdf")
    return msg.as_bytes()


class TestInvoiceArchivePipeline(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.output_dir = root / "archive"
        self.config = Config(str(root / "absent.env"), environ={
            "IMAP_SERVER": "imap.corp.example",
            "IMAP_USERNAME": "archiver@corp.example",
            "IMAP_PASSWORD": "secret",
            "FILTER_EMAIL": "invoices@corp.example",
            "OUTPUT_DIR": str(self.output_dir),
            "LOG_FILE": str(root / "logs" / "archiver.log"),
            "DELTA_START": "1",
            "DELTA_END": "1",
        })

        connection_patcher = patch("invoice_archiver.main.IMAPConnection")
        logging_patcher = patch.object(InvoiceArchivePipeline, "_setup_logging")
        self.mock_connection_cls = connection_patcher.start()
        logging_patcher.start()
        self.addCleanup(connection_patcher.stop)
        self.addCleanup(logging_patcher.stop)

        self.connection = self.mock_connection_cls.return_value
        self.connection.connect.return_value = True
        self.connection.select_folder.return_value = True

    def tearDown(self):
        self.tmp.cleanup()

    def _serve(self, raw_messages):
        parser = MailMessageParser()
        received = datetime(2024, 3, 14, 9, 0)
        self.connection.search_window.return_value = [str(i).encode() for i in range(1, len(raw_messages) + 1)]
        self.connection.fetch_messages.return_value = [
            parser.parse(i, raw, received) for i, raw in enumerate(raw_messages, start=1)
        ]

    def test_run_archives_routed_messages(self):
        self._serve([
            _raw_invoice("Invoice 1001"),
            _raw_invoice("Newsletter", to="everyone@corp.example"),
        ])

        pipeline = InvoiceArchivePipeline(self.config)
        report = pipeline.run(now=datetime(2024, 3, 15, 6, 0))

        self.assertEqual(len(report.archived), 1)
        self.assertEqual(report.skipped, 1)
        record_path = self.output_dir / "MARCH_2024" / "invoice_1001.json"
        data = json.loads(record_path.read_text(encoding="utf-8"))
        self.assertEqual(data["from"], "Vendor Billing <billing@vendor.example>")
        self.assertEqual(data["to"], "invoices@corp.example")
        self.assertEqual(data["messageNumber"], 1)
        self.assertEqual(data["received"], "2024-03-14T09:00:00")
        self.assertEqual(len(data["files"]), 1)
        saved = record_path.parent / data["files"][0]
        self.assertEqual(saved.read_bytes(), b"%PDF-1.4 invoice")

        self.connection.select_folder.assert_called_once_with("INBOX")
        start, end = self.connection.search_window.call_args[0]
        self.assertEqual(start, datetime(2024, 3, 14, 0, 0))
        self.assertEqual(end.date(), datetime(2024, 3, 14).date())
        self.connection.disconnect.assert_called_once()

    def test_connect_failure_raises(self):
        self.connection.connect.return_value = False

        pipeline = InvoiceArchivePipeline(self.config)
        with self.assertRaises(ConnectivityError):
            pipeline.run()

        self.connection.search_window.assert_not_called()

    def test_folder_failure_raises_and_disconnects(self):
        self.connection.select_folder.return_value = False

        pipeline = InvoiceArchivePipeline(self.config)
        with self.assertRaises(ConnectivityError):
            pipeline.run()

        self.connection.disconnect.assert_called_once()

    def test_empty_window(self):
        self._serve([])

        with self.assertLogs("InvoiceArchivePipeline", logging.INFO) as logs:
            report = InvoiceArchivePipeline(self.config).run(now=datetime(2024, 3, 15))

        self.assertEqual(report.archived, [])
        self.assertTrue(any("No messages" in line for line in logs.output))
        self.assertFalse(self.output_dir.exists())


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root_handlers = logging.getLogger().handlers[:]
        self.root_level = logging.getLogger().level

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            if handler not in self.root_handlers:
                handler.close()
        root.handlers = self.root_handlers
        root.setLevel(self.root_level)
        self.tmp.cleanup()

    @patch("invoice_archiver.main.IMAPConnection", MagicMock())
    def test_json_log_file(self):
        log_file = Path(self.tmp.name) / "logs" / "run.log"
        config = Config(str(Path(self.tmp.name) / "absent.env"), environ={
            "LOG_FILE": str(log_file),
            "LOG_FORMAT": "json",
            "LOG_LEVEL": "debug",
        })

        pipeline = InvoiceArchivePipeline(config)
        for handler in logging.getLogger().handlers:
            handler.flush()

        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        first_line = log_file.read_text(encoding="utf-8").splitlines()[0]
        self.assertEqual(json.loads(first_line)["logger"], "InvoiceArchivePipeline")
        self.assertIsNotNone(pipeline.metrics)


if __name__ == "__main__":
    unittest.main()
