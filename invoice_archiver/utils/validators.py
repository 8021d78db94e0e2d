from typing import List
from invoice_archiver.utils.config import Config

def check_default_credentials(config: Config) -> List[str]:
    """
    Check if the configuration uses default example values.
    Returns a list of error messages.
    """
    errors = []

    # Default values from .env.example
    DEFAULT_SERVERS = ["imap.example.com"]
    DEFAULT_USERNAMES = ["your-email@example.com"]
    DEFAULT_PASSWORDS = ["your-app-password-here"]
    DEFAULT_FILTER = "invoices@example.com"

    if config.mailbox.imap_server in DEFAULT_SERVERS:
        errors.append(f"Mailbox uses the example server: {config.mailbox.imap_server}")
    if config.mailbox.username in DEFAULT_USERNAMES:
        errors.append(f"Mailbox uses the example username: {config.mailbox.username}")
    if config.mailbox.password in DEFAULT_PASSWORDS:
        errors.append("Mailbox uses the example password")

    if config.archive.filter_email == DEFAULT_FILTER:
        errors.append(f"Routing filter uses the example address: {DEFAULT_FILTER}")

    return errors
