"""
Content Classifier
Decides how a MIME part is handled from its declared media type

All functions here are pure: they only look at the strings they are given.
"""

from enum import Enum
from typing import Optional, Tuple


DEFAULT_ENCODING = "utf-8"
CHARSET_TOKEN = "charset="


class ContentCategory(Enum):
    """Handling category of a MIME part"""
    PLAIN_TEXT = "plain-text"
    HYPERTEXT = "hypertext"
    MULTIPART_ALTERNATIVE = "multipart-alternative"
    MULTIPART_MIXED = "multipart-mixed"
    BINARY_ATTACHMENT = "binary-attachment"
    UNRECOGNIZED = "unrecognized"

    @property
    def is_composite(self) -> bool:
        return self in (ContentCategory.MULTIPART_ALTERNATIVE, ContentCategory.MULTIPART_MIXED)


# Ordered: the first matching needle wins. The catch-all multipart row comes
# last so related/signed/report containers are still expanded.
CLASSIFICATION_TABLE: Tuple[Tuple[str, ContentCategory], ...] = (
    ("multipart/alternative", ContentCategory.MULTIPART_ALTERNATIVE),
    ("multipart/mixed", ContentCategory.MULTIPART_MIXED),
    ("text/html", ContentCategory.HYPERTEXT),
    ("text/plain", ContentCategory.PLAIN_TEXT),
    ("application/pdf", ContentCategory.BINARY_ATTACHMENT),
    ("application/octet-stream", ContentCategory.BINARY_ATTACHMENT),
    ("multipart/", ContentCategory.MULTIPART_MIXED),
)


def classify(media_type: Optional[str]) -> ContentCategory:
    """
    Classify a declared media type

    Args:
        media_type: Full Content-Type value, parameters included
            (e.g. "text/plain; charset=iso-8859-1")

    Returns:
        The handling category, UNRECOGNIZED when nothing in the table matches
    """
    if not media_type:
        return ContentCategory.UNRECOGNIZED

    lowered = media_type.lower()
    for needle, category in CLASSIFICATION_TABLE:
        if needle in lowered:
            return category

    return ContentCategory.UNRECOGNIZED


def encoding_hint(media_type: Optional[str]) -> str:
    """
    Extract the charset parameter from a media type

    Example:
        >>> encoding_hint('text/html; charset="ISO-8859-1"; format=flowed')
        'ISO-8859-1'
        >>> encoding_hint("text/plain")
        'utf-8'
    """
    if not media_type:
        return DEFAULT_ENCODING

    index = media_type.lower().find(CHARSET_TOKEN)
    if index < 0:
        return DEFAULT_ENCODING

    value = media_type[index + len(CHARSET_TOKEN):]
    value = value.split(";")[0].strip()
    value = value.split()[0] if value else ""
    value = value.strip("\"'")

    return value or DEFAULT_ENCODING


def is_attachment(
    file_name: Optional[str],
    disposition: Optional[str],
    category: ContentCategory
) -> bool:
    """
    Check whether a part must be saved as a file rather than rendered

    This runs before composite expansion, so an attachment-flagged part that
    looks like a multipart container is saved whole instead of recursed into.
    """
    if file_name and file_name.strip():
        return True
    if disposition and disposition.strip().lower() == "attachment":
        return True
    return category is ContentCategory.BINARY_ATTACHMENT
