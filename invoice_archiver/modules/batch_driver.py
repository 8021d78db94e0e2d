"""
Batch Driver
Selects the relevant messages of a batch and archives each one in isolation

A failure while archiving one message (decode error, render error, directory
creation error) is logged with the message's subject and the batch moves on.
No record is written for a message that failed.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .mail_message import MailMessage
from .message_record import build_record, message_base_name, write_record
from .mime_walker import MimeTreeWalker
from .period_locator import locate
from ..utils.config import ArchiveConfig, FILTER_MODE_SUBJECT
from ..utils.metrics import RunMetrics
from ..utils.sanitization import sanitize_for_logging


@dataclass
class BatchReport:
    """Outcome of one batch"""
    archived: List[Path] = field(default_factory=list)
    failed: List[Tuple[int, str, str]] = field(default_factory=list)
    skipped: int = 0


class BatchDriver:
    """
    Archives a batch of messages

    MAINTENANCE WISDOM: The driver never talks to the mail store; it is given
    MailMessage handles. That keeps the whole archive path testable with
    messages built in memory.
    """

    def __init__(
        self,
        config: ArchiveConfig,
        walker: Optional[MimeTreeWalker] = None,
        metrics: Optional[RunMetrics] = None
    ):
        self.config = config
        self.walker = walker or MimeTreeWalker()
        self.metrics = metrics or RunMetrics()
        self.logger = logging.getLogger("BatchDriver")

    def is_routed(self, message: MailMessage) -> bool:
        """Recipient filter: the routing address appears among the recipients"""
        target = self.config.filter_email.lower()
        return bool(target) and target in message.recipients.lower()

    def has_relevant_subject(self, message: MailMessage) -> bool:
        """
        Subject filter: a keyword is contained in the subject, or the subject
        in a keyword (both case-insensitive)
        """
        subject = message.subject.lower()
        for keyword in self.config.relevant_subjects:
            keyword = keyword.lower()
            if keyword in subject or (subject and subject in keyword):
                return True
        return False

    def is_relevant(self, message: MailMessage) -> bool:
        if self.config.filter_mode == FILTER_MODE_SUBJECT:
            return self.has_relevant_subject(message)
        return self.is_routed(message)

    def in_window(self, message: MailMessage, window: Optional[Tuple[datetime, datetime]]) -> bool:
        if window is None:
            return True

        received = message.received
        if received.tzinfo is not None:
            received = received.astimezone().replace(tzinfo=None)
        start, end = window
        return start <= received <= end

    def run(
        self,
        messages: Iterable[MailMessage],
        window: Optional[Tuple[datetime, datetime]] = None
    ) -> BatchReport:
        """
        Archive every relevant message of a batch, in selection order

        Args:
            messages: Candidate messages
            window: Optional inclusive (start, end) receive-time window

        Returns:
            BatchReport listing written records and failed messages
        """
        report = BatchReport()

        for message in messages:
            self.metrics.messages_fetched += 1
            safe_subject = sanitize_for_logging(message.subject, 80)

            if not self.in_window(message, window) or not self.is_relevant(message):
                self.logger.debug(f"Skipping message {message.sequence_number}: '{safe_subject}'")
                report.skipped += 1
                continue

            self.metrics.messages_selected += 1
            self.logger.info(
                f"Begin processing of message {message.sequence_number}: '{safe_subject}' "
                f"({sanitize_for_logging(message.content_type.split(';')[0], 40)})"
            )

            started = time.monotonic()
            try:
                record_path = self.archive_message(message)
            except Exception as e:
                self.logger.error(
                    f"Error archiving message {message.sequence_number} '{safe_subject}': {e}",
                    exc_info=True,
                    extra={
                        "message_number": message.sequence_number,
                        "subject": message.subject,
                        "error_type": type(e).__name__,
                    }
                )
                self.metrics.record_failure(type(e).__name__)
                report.failed.append((message.sequence_number, message.subject, str(e)))
                continue
            finally:
                self.metrics.record_processing_time((time.monotonic() - started) * 1000)

            report.archived.append(record_path)

        return report

    def archive_message(self, message: MailMessage) -> Path:
        """
        Extract one message into its period directory and write its record

        Returns:
            Path of the written record

        Raises:
            ExtractionError: If the message cannot be archived coherently
        """
        folder = locate(message.received, self.config.output_dir)
        base_name = message_base_name(message.subject)

        result = self.walker.walk(message.root, base_name, folder)

        record = build_record(
            sender=message.sender,
            recipients=message.recipients,
            subject=message.subject,
            message_number=message.sequence_number,
            body=result.fragments,
            received=message.received,
            files=result.attachments,
        )
        record_path = write_record(record, folder)

        self.metrics.record_archived(len(result.attachments), result.failed_attachments)
        self.logger.info(
            f"Archived message {message.sequence_number} to {record_path} "
            f"({len(result.attachments)} attachment(s), {len(result.artifacts)} body file(s))",
            extra={
                "message_number": message.sequence_number,
                "period": folder.name,
                "record": record_path.name,
            }
        )
        return record_path
