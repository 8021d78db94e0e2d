"""
Security Validators Module
Centralizes safety limits and helpers for handling untrusted mail content

SECURITY STORY: These validators protect the archive directory and the run:
- MAX_SUBJECT_LENGTH / MAX_BASE_NAME_BYTES: Bound the subject-derived part
  of every file name. Filesystems count name length in bytes, so a CJK
  subject reaches the limit three times sooner than an ASCII one.
- MAX_MIME_DEPTH: Stops MIME bombs (deeply nested containers) from
  exhausting the recursive walker (CWE-674: Uncontrolled Recursion)
- MAX_EMAIL_SIZE: Messages larger than this are not downloaded at all
"""

import re
import ssl
import logging

# Security limits
MAX_SUBJECT_LENGTH = 80  # Characters of the subject kept in artifact base names
MAX_FILENAME_BYTES = 255  # NAME_MAX on ext4, xfs, btrfs and APFS
MAX_BASE_NAME_BYTES = 200  # Leaves room for "--<token>" suffixes and extensions
MAX_MIME_DEPTH = 32

# 100MB ceiling for a single message download
MAX_EMAIL_SIZE = 100 * 1024 * 1024

# Filename sanitization patterns to prevent path traversal (CWE-22)
# SECURITY STORY: Whitelist approach - only allow safe characters
FILENAME_SANITIZE_PATTERN = re.compile(r"[^\w\s\-_\.]")
FILENAME_COLLAPSE_DOTS_PATTERN = re.compile(r"\.{2,}")

# Windows reserved filenames that cannot be used regardless of extension
WINDOWS_RESERVED_NAMES = {
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9"
}

logger = logging.getLogger(__name__)


def truncate_utf8(text: str, max_bytes: int) -> str:
    """
    Cut text to at most max_bytes of UTF-8 without splitting a character

    Example:
        >>> truncate_utf8("März", 2)
        'M'
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    # A split multi-byte sequence can only sit at the very end
    return encoded[:max(max_bytes, 0)].decode("utf-8", "ignore")


def sanitize_filename(filename: str) -> str:
    """
    Sanitize an attachment filename before it is written to the archive

    SECURITY STORY: An attachment named "../../etc/passwd" must never escape
    the period directory. Path components are dropped and only alphanumerics,
    spaces, hyphens, underscores and single dots are kept.

    Args:
        filename: Original filename from the attachment headers

    Returns:
        Sanitized filename safe for filesystem operations

    Example:
        >>> sanitize_filename("../../etc/passwd")
        'passwd'
        >>> sanitize_filename("invoice.pdf")
        'invoice.pdf'
    """
    if not filename:
        return "unnamed_attachment"

    # Remove path components before character filtering
    filename = filename.split("/")[-1].split("\\")[-1]

    sanitized = FILENAME_SANITIZE_PATTERN.sub("", filename)

    # Collapse multiple dots ("....///" style bypasses)
    sanitized = FILENAME_COLLAPSE_DOTS_PATTERN.sub(".", sanitized)

    sanitized = sanitized.strip(". ")

    if not sanitized:
        return "unnamed_attachment"

    # CON.txt is invalid on Windows regardless of extension
    base_name = sanitized.split('.')[0].strip().upper()
    if base_name in WINDOWS_RESERVED_NAMES:
        sanitized = "_" + sanitized

    # AttachmentSaver fits the final name (prefix and tokens included) to
    # MAX_FILENAME_BYTES
    return sanitized[:120].rstrip(". ")


def create_secure_ssl_context() -> ssl.SSLContext:
    """
    Create a secure SSL context with modern TLS settings

    SECURITY STORY: Mailbox credentials travel over this connection. TLS 1.2+
    with hostname checking keeps them away from downgrade and MITM attacks.

    Returns:
        Configured SSL context
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    context.check_hostname = True
    context.verify_mode = ssl.CERT_REQUIRED

    context.load_default_certs()

    logger.debug("Created secure SSL context with TLS 1.2+ enforcement")
    return context
