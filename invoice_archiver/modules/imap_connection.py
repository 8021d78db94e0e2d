"""
IMAP Connection Module
Handles IMAP connection management, folder selection, date-window search and fetching

PATTERN RECOGNITION: This follows the Adapter pattern - it wraps Python's
imaplib to provide the mail-store interface the batch driver needs.

SECURITY STORY: IMAP connections are security-critical because:
- Credentials are transmitted (we enforce TLS 1.2+)
- We download potentially malicious data (we enforce size limits)
- Connection errors can leak information (we redact addresses in logs)
"""

import imaplib
import logging
import ssl
import time
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple

from .mail_message import MailMessage, MailMessageParser
from ..utils.config import MailboxConfig
from ..utils.sanitization import sanitize_for_logging, redact_email
from ..utils.security_validators import create_secure_ssl_context, MAX_EMAIL_SIZE


# IMAP dates are always English, whatever the process locale is
IMAP_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
FETCH_BATCH_SIZE = 10


def date_window(now: datetime, delta_start: int, delta_end: int) -> Tuple[datetime, datetime]:
    """
    Compute the inclusive receive-date window

    Args:
        now: Reference time (usually datetime.now())
        delta_start: Days back to the first day of the window
        delta_end: Days back to the last day of the window

    Returns:
        (start of the first day, end of the last day)

    Example:
        With now=2024-03-15 10:00, delta_start=3, delta_end=1 the window is
        2024-03-12 00:00:00 .. 2024-03-14 23:59:59.999999
    """
    first_day = (now - timedelta(days=delta_start)).date()
    last_day = (now - timedelta(days=delta_end)).date()
    start = datetime.combine(first_day, datetime.min.time())
    end = datetime.combine(last_day, datetime.max.time())
    return start, end


def imap_date(value: datetime) -> str:
    """Format a date the way IMAP SEARCH expects it (e.g. 05-Mar-2024)"""
    return f"{value.day:02d}-{IMAP_MONTHS[value.month - 1]}-{value.year}"


def build_search_criteria(start: datetime, end: datetime) -> str:
    """
    IMAP SEARCH criteria covering whole days from start to end inclusive

    BEFORE is exclusive, so it points at the day after the window ends.
    """
    day_after = end.date() + timedelta(days=1)
    return f"(SINCE {imap_date(start)} BEFORE {imap_date(day_after)})"


class IMAPConnection:
    """
    Manages IMAP connection and folder operations

    MAINTENANCE WISDOM: Keep connection management separate from parsing.
    Fetched bytes are handed to MailMessageParser; nothing here inspects
    message content.
    """

    def __init__(
        self,
        config: MailboxConfig,
        rate_limit_delay: int = 1,
        parser: Optional[MailMessageParser] = None,
        max_email_size: int = MAX_EMAIL_SIZE
    ):
        """
        Initialize IMAP connection manager

        Args:
            config: Mailbox configuration
            rate_limit_delay: Delay between fetch batches (seconds)
            parser: Parser for fetched messages
            max_email_size: Messages above this size are not downloaded
        """
        self.config = config
        self.rate_limit_delay = rate_limit_delay
        self.parser = parser or MailMessageParser()
        self.max_email_size = max_email_size
        self.connection: Optional[imaplib.IMAP4] = None
        self.logger = logging.getLogger("IMAPConnection")

    def connect(self) -> bool:
        """
        Establish connection to IMAP server with secure TLS

        SECURITY STORY: TLS 1.2+ is enforced and a 30-second socket timeout
        keeps a dead server from hanging the run at connect time.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            self.logger.info(
                f"Connecting to {self.config.imap_server}:{self.config.imap_port} "
                f"(SSL={self.config.use_ssl})"
            )

            context = create_secure_ssl_context()
            if not self.config.verify_ssl:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
                self.logger.warning("SSL verification disabled - use only for testing!")

            if self.config.use_ssl:
                self.connection = imaplib.IMAP4_SSL(
                    self.config.imap_server,
                    self.config.imap_port,
                    ssl_context=context,
                    timeout=30
                )
            else:
                self.connection = imaplib.IMAP4(
                    self.config.imap_server,
                    self.config.imap_port,
                    timeout=30
                )
                self.connection.starttls(ssl_context=context)

            self.connection.login(self.config.username, self.config.password)
            self.logger.info(f"Successfully connected as {redact_email(self.config.username)}")
            return True

        except imaplib.IMAP4.error as e:
            self.logger.error(f"IMAP connection error: {e}")
            return False
        except Exception as e:
            self.logger.error(f"Unexpected connection error: {e}")
            return False

    def disconnect(self):
        """
        Close IMAP connection gracefully
        """
        if not self.connection:
            return

        try:
            self.connection.logout()
            self.logger.info("Disconnected from IMAP server")
        except Exception:
            # Connection may already be closed
            self.logger.debug("Connection was already closed or logout failed")
        finally:
            self.connection = None

    def select_folder(self, folder: str) -> bool:
        """
        Open a folder read-only

        Args:
            folder: Folder name (e.g., 'INBOX')

        Returns:
            True if folder selected successfully
        """
        if not self.connection:
            return False

        safe_folder = sanitize_for_logging(folder)
        try:
            status, _ = self.connection.select(folder, readonly=True)
            if status == "OK":
                self.logger.debug(f"Selected folder: {safe_folder}")
                return True

            self.logger.warning(f"Could not select folder {safe_folder}: {status}")
            return False
        except Exception as e:
            self.logger.error(f"Error selecting folder {safe_folder}: {e}")
            return False

    def search_window(self, start: datetime, end: datetime) -> List[bytes]:
        """
        Search the selected folder for messages received within a day window

        Returns:
            Message sequence numbers (as bytes), in mailbox order
        """
        if not self.connection:
            return []

        criteria = build_search_criteria(start, end)
        try:
            status, data = self.connection.search(None, criteria)
        except Exception as e:
            self.logger.error(f"Search failed ({criteria}): {e}")
            return []

        if status != "OK" or not data:
            self.logger.warning(f"Search failed ({criteria}): {status}")
            return []

        ids = data[0].split() if data[0] else []
        self.logger.info(f"Found {len(ids)} messages matching {criteria}")
        return ids

    def fetch_messages(self, message_ids: List[bytes]) -> List[MailMessage]:
        """
        Fetch and parse messages in batches

        Args:
            message_ids: Sequence numbers from search_window()

        Returns:
            Parsed MailMessage handles; unparseable or oversized messages are left out
        """
        messages = []

        for i in range(0, len(message_ids), FETCH_BATCH_SIZE):
            if i > 0:
                time.sleep(self.rate_limit_delay)

            batch_ids = message_ids[i : i + FETCH_BATCH_SIZE]
            messages.extend(self._fetch_batch(batch_ids))

        return messages

    def _fetch_batch(self, message_ids: List[bytes]) -> List[MailMessage]:
        """
        Fetch one batch, checking sizes first

        SECURITY STORY: RFC822.SIZE is cheap to ask for; oversized messages are
        skipped before their bodies are ever downloaded.
        """
        messages = []

        safe_ids = self._check_email_sizes(message_ids)
        if not safe_ids:
            return messages

        ids_str = b",".join(safe_ids)
        try:
            status, data = self.connection.fetch(ids_str, "(INTERNALDATE RFC822)")
        except Exception as e:
            self.logger.error(f"Error fetching batch {ids_str}: {e}")
            return messages

        if status != "OK" or not isinstance(data, list):
            self.logger.warning(f"Failed to fetch batch {ids_str}: {status}")
            return messages

        for item in data:
            parsed = self._parse_fetch_item(item)
            if parsed:
                messages.append(parsed)

        return messages

    def _parse_fetch_item(self, item: Any) -> Optional[MailMessage]:
        """
        Parse one (header, body) pair from a FETCH response

        The header looks like b'123 (INTERNALDATE "05-Mar-2024 10:00:00 +0100" RFC822 {456}'.
        """
        if not isinstance(item, tuple) or len(item) < 2:
            return None

        header, raw_bytes = item[0], item[1]
        try:
            sequence_number = int(header.split()[0])
        except (ValueError, IndexError, AttributeError) as e:
            self.logger.error(f"Error parsing fetch header {header!r}: {e}")
            return None

        if not isinstance(raw_bytes, bytes):
            self.logger.warning(
                f"Unexpected payload type for message {sequence_number}: {type(raw_bytes)}"
            )
            return None

        internal_date = None
        date_tuple = imaplib.Internaldate2tuple(header)
        if date_tuple:
            internal_date = datetime.fromtimestamp(time.mktime(date_tuple))

        return self.parser.parse(sequence_number, raw_bytes, internal_date)

    def _check_email_sizes(self, message_ids: List[bytes]) -> List[bytes]:
        """
        Filter out messages larger than max_email_size

        Returns:
            Sequence numbers that are within the size limit
        """
        ids_str = b",".join(message_ids)
        safe_ids = []

        try:
            status, size_data = self.connection.fetch(ids_str, "(RFC822.SIZE)")
        except Exception as e:
            self.logger.error(f"Error checking message sizes: {e}")
            return safe_ids

        if status != "OK" or not isinstance(size_data, list):
            return safe_ids

        for item in size_data:
            info = item[0] if isinstance(item, tuple) else item
            if not isinstance(info, bytes):
                continue

            content = info.decode("ascii", errors="replace")
            if "RFC822.SIZE" not in content:
                continue

            try:
                seq = info.split()[0]
                size_str = content[content.find("RFC822.SIZE") + 11:].strip().split(")")[0]
                size = int(size_str.strip())
            except (ValueError, IndexError) as parse_err:
                self.logger.warning(f"Error parsing size for {info!r}: {parse_err}")
                continue

            if size > self.max_email_size:
                self.logger.warning(
                    f"Skipping oversized message {seq.decode()} "
                    f"({size} bytes > {self.max_email_size})"
                )
                continue

            safe_ids.append(seq)

        return safe_ids
