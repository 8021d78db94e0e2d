"""
Mail Message Module
Turns raw RFC822 bytes fetched from the mailbox into MailMessage handles

PATTERN RECOGNITION: This follows the Parser pattern - it takes unstructured
data (raw email bytes) and transforms it into a structured object the batch
driver can filter and archive.
"""

import email
import logging
from dataclasses import dataclass
from datetime import datetime
from email.header import Header
from email.message import Message
from email.utils import getaddresses, parsedate_to_datetime
from typing import Optional

from .message_parts import MessagePart, decode_header_value, part_from_message
from ..utils.sanitization import sanitize_for_logging


RECIPIENT_HEADERS = ("To", "Cc", "Bcc")


def _header_text(value) -> str:
    # Only raw 8-bit values arrive as Header objects; encoded words are
    # decoded per display name after the addresses are split
    return decode_header_value(value) if isinstance(value, Header) else str(value)


@dataclass(frozen=True)
class MailMessage:
    """
    Message handle as seen by the batch driver

    The subject may be empty but is never None. `recipients` renders every
    To/Cc/Bcc address and is what the routing filter matches against.
    """
    sequence_number: int
    sender: str
    recipients: str
    subject: str
    received: datetime
    content_type: str
    root: MessagePart


class MailMessageParser:
    """
    Parses raw email bytes into MailMessage handles

    MAINTENANCE WISDOM: Keep parsing logic separate from I/O (IMAP connection).
    Tests build messages with the email package and never need a server.
    """

    def __init__(self):
        self.logger = logging.getLogger("MailMessageParser")

    def parse(
        self,
        sequence_number: int,
        raw_email: bytes,
        internal_date: Optional[datetime] = None
    ) -> Optional[MailMessage]:
        """
        Parse raw email into a MailMessage

        Args:
            sequence_number: IMAP message sequence number
            raw_email: Raw RFC822 bytes
            internal_date: Server-side received time (IMAP INTERNALDATE), if known

        Returns:
            MailMessage if parsing succeeds, None if it fails
        """
        try:
            msg = email.message_from_bytes(raw_email)
            return self.from_message(sequence_number, msg, internal_date)
        except Exception as e:
            self.logger.error(f"Error parsing message {sequence_number}: {e}")
            return None

    def from_message(
        self,
        sequence_number: int,
        msg: Message,
        internal_date: Optional[datetime] = None
    ) -> MailMessage:
        """Build a MailMessage from an already parsed email.message.Message"""
        subject = decode_header_value(msg.get("Subject", ""))
        recipients = ", ".join(
            rendered
            for rendered in (self._format_addresses(msg.get_all(header, [])) for header in RECIPIENT_HEADERS)
            if rendered
        )

        return MailMessage(
            sequence_number=int(sequence_number),
            sender=self._format_addresses(msg.get_all("From", [])),
            recipients=recipients,
            subject=subject,
            received=internal_date or self._extract_date(msg, sequence_number),
            content_type=str(msg.get("Content-Type") or "text/plain"),
            root=part_from_message(msg),
        )

    def _extract_date(self, msg: Message, sequence_number: int) -> datetime:
        """
        Fall back to the Date header, then to the current time
        """
        date_str = msg.get("Date", "")
        try:
            return parsedate_to_datetime(date_str)
        except Exception:
            self.logger.warning(
                f"Message {sequence_number} has no usable date "
                f"('{sanitize_for_logging(str(date_str), 60)}'); using current time"
            )
            return datetime.now()

    @staticmethod
    def _format_addresses(header_values) -> str:
        """
        Parse and format addresses from one or more header values

        Example:
            >>> MailMessageParser._format_addresses(['"John Doe" <john@example.com>'])
            'John Doe <john@example.com>'
        """
        if not header_values:
            return ""

        formatted = []
        for name, address in getaddresses([_header_text(value) for value in header_values]):
            name_clean = decode_header_value(name)
            if name_clean and address:
                formatted.append(f"{name_clean} <{address}>")
            elif address:
                formatted.append(address)
            elif name_clean:
                formatted.append(name_clean)

        return ", ".join(formatted)
