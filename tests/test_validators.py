import unittest
from unittest.mock import MagicMock
from invoice_archiver.utils.validators import check_default_credentials
from invoice_archiver.utils.config import Config, MailboxConfig, ArchiveConfig


class TestValidators(unittest.TestCase):
    def setUp(self):
        self.config = MagicMock(spec=Config)
        self.config.mailbox = MailboxConfig(
            imap_server="imap.corp.example",
            imap_port=993,
            username="archiver@corp.example",
            password="real-password",
            folder="INBOX",
            use_ssl=True,
            verify_ssl=True,
        )
        self.config.archive = ArchiveConfig(
            output_dir="archive",
            filter_email="invoices@corp.example",
            filter_mode="recipient",
            relevant_subjects=[],
            delta_start=1,
            delta_end=1,
        )

    def test_no_defaults_clean(self):
        self.assertEqual(check_default_credentials(self.config), [])

    def test_default_server(self):
        self.config.mailbox.imap_server = "imap.example.com"
        errors = check_default_credentials(self.config)
        self.assertIn("Mailbox uses the example server: imap.example.com", errors)

    def test_default_username(self):
        self.config.mailbox.username = "your-email@example.com"
        errors = check_default_credentials(self.config)
        self.assertIn("Mailbox uses the example username: your-email@example.com", errors)

    def test_default_password(self):
        self.config.mailbox.password = "your-app-password-here"
        errors = check_default_credentials(self.config)
        self.assertIn("Mailbox uses the example password", errors)

    def test_default_filter(self):
        self.config.archive.filter_email = "invoices@example.com"
        errors = check_default_credentials(self.config)
        self.assertEqual(len(errors), 1)


if __name__ == '__main__':
    unittest.main()
