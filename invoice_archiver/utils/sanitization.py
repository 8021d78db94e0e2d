"""
Sanitization Utility Module
Provides functions to sanitize inputs for safe logging and display.
"""

import re
import unicodedata

ANSI_ESCAPE_PATTERN = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')


def sanitize_for_logging(text: str, max_length: int = 255) -> str:
    """
    Sanitize text for safe logging to prevent Log Injection (CRLF) and terminal manipulation.

    Subjects and attachment names come straight from untrusted mail headers,
    so every one of them goes through here before it reaches a log line.

    Args:
        text: The input string to sanitize.
        max_length: Maximum allowed length for the log entry (truncates if longer).

    Returns:
        Sanitized string safe for logging.
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFKC', str(text))

    text = text.replace('\n', '\\n').replace('\r', '\\r')

    # Remove ANSI escape sequences (terminal colors/cursor movement)
    text = ANSI_ESCAPE_PATTERN.sub('', text)

    # Remove remaining control characters (ASCII 0-31 except tab)
    text = "".join(ch for ch in text if ch == '\t' or ord(ch) >= 32)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text


def redact_email(address: str) -> str:
    """
    Mask the local part of an address for log output.

    Example:
        >>> redact_email("invoices@example.com")
        'in***@example.com'
    """
    if not address or "@" not in address:
        return "***"

    local, _, domain = address.partition("@")
    visible = local[:2] if len(local) > 2 else local[:1]
    return f"{visible}***@{domain}"
