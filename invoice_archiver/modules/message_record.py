"""
Message Record
The JSON summary written once per archived message
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .errors import ExtractionError
from ..utils.security_validators import MAX_BASE_NAME_BYTES, MAX_SUBJECT_LENGTH, truncate_utf8


logger = logging.getLogger(__name__)

NAME_SEPARATOR_PATTERN = re.compile(r"[/\\ ]")
EMPTY_SUBJECT_NAME = "untitled"


@dataclass(frozen=True)
class MessageRecord:
    """Structured summary of one archived message"""
    sender: str
    recipients: str
    subject: str
    message_number: int
    body: List[str] = field(default_factory=list)
    received: Optional[datetime] = None
    files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form; key order is part of the file layout"""
        return {
            "from": self.sender,
            "to": self.recipients,
            "subject": self.subject,
            "messageNumber": self.message_number,
            "body": list(self.body),
            "received": self.received.isoformat() if self.received else None,
            "files": list(self.files),
        }


def build_record(
    sender: str,
    recipients: str,
    subject: str,
    message_number: int,
    body: Sequence[str],
    received: datetime,
    files: Sequence[str]
) -> MessageRecord:
    """Assemble a MessageRecord; no I/O"""
    return MessageRecord(
        sender=sender,
        recipients=recipients,
        subject=subject or "",
        message_number=message_number,
        body=list(body),
        received=received,
        files=list(files),
    )


def message_base_name(subject: str) -> str:
    """
    Derive the artifact base name from a subject

    Lowercased, with path separators and spaces turned into underscores.
    Nothing else is escaped. Overlong subjects are cut to MAX_SUBJECT_LENGTH
    characters and MAX_BASE_NAME_BYTES bytes of UTF-8.
    """
    name = NAME_SEPARATOR_PATTERN.sub("_", subject or "").lower()[:MAX_SUBJECT_LENGTH]
    name = truncate_utf8(name, MAX_BASE_NAME_BYTES)
    return name or EMPTY_SUBJECT_NAME


def record_file_name(subject: str) -> str:
    return f"{message_base_name(subject)}.json"


def write_record(record: MessageRecord, directory: Path) -> Path:
    """
    Write a record into its period directory

    Two messages with the same subject in one period share a file name; the
    later one replaces the earlier record.

    Raises:
        ExtractionError: If the file cannot be written
    """
    path = Path(directory) / record_file_name(record.subject)

    if path.exists():
        logger.warning(
            f"Record {path.name} already exists and will be replaced "
            f"by message {record.message_number}"
        )

    try:
        path.write_text(
            json.dumps(record.to_dict(), ensure_ascii=False),
            encoding="utf-8"
        )
    except OSError as e:
        raise ExtractionError(f"Cannot write record {path}: {e}") from e

    return path
