"""
MIME Tree Walker
Recursive, depth-first extraction of a message's content tree

SECURITY STORY: Nesting depth is bounded by MAX_MIME_DEPTH. A message that
nests containers deeper than that is treated as unextractable instead of
being walked until the interpreter's recursion limit.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .content_classifier import ContentCategory, classify, encoding_hint, is_attachment
from .errors import ExtractionError
from .message_parts import AccessStatus, MessagePart
from .renderers import AttachmentSaver, Disambiguator, HtmlDocumentRenderer, TextRenderer
from ..utils.sanitization import sanitize_for_logging
from ..utils.security_validators import MAX_MIME_DEPTH


TAG_RUN_PATTERN = re.compile(r"<[^>]*>(\s*<[^>]*>)*", re.DOTALL)


def strip_tags(text: str) -> str:
    """
    Collapse every run of HTML tags (and the whitespace between adjacent
    tags) into a single space

    A run at the very start or end of the text is dropped instead, so no
    space is added there; whitespace that was in the text stays.

    Example:
        >>> strip_tags("<b>x</b> <i>y</i>")
        'x y'
    """
    return TAG_RUN_PATTERN.sub(_tag_run_replacement, text)


def _tag_run_replacement(match: re.Match) -> str:
    at_edge = match.start() == 0 or match.end() == len(match.string)
    return "" if at_edge else " "


@dataclass
class ExtractionResult:
    """Accumulator threaded through one message's walk"""
    fragments: List[str] = field(default_factory=list)
    attachments: List[str] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)
    failed_attachments: int = 0

    def add_text(self, text: str):
        """Append the stripped and the raw variant of one body"""
        self.fragments.append(strip_tags(text))
        self.fragments.append(text)


class MimeTreeWalker:
    """
    Walks a MessagePart tree and dispatches each leaf to its renderer

    MAINTENANCE WISDOM: The walker owns no I/O of its own; everything that
    touches the filesystem lives in the renderers, which can be swapped for
    doubles in tests.
    """

    def __init__(
        self,
        text_renderer: Optional[TextRenderer] = None,
        html_renderer: Optional[HtmlDocumentRenderer] = None,
        attachment_saver: Optional[AttachmentSaver] = None,
        disambiguator: Optional[Disambiguator] = None,
        max_depth: int = MAX_MIME_DEPTH
    ):
        disambiguator = disambiguator or Disambiguator()
        self.text_renderer = text_renderer or TextRenderer(disambiguator)
        self.html_renderer = html_renderer or HtmlDocumentRenderer(disambiguator)
        self.attachment_saver = attachment_saver or AttachmentSaver(disambiguator)
        self.max_depth = max_depth
        self.logger = logging.getLogger("MimeTreeWalker")

    def walk(
        self,
        part: MessagePart,
        base_name: str,
        target_dir: Path,
        result: Optional[ExtractionResult] = None,
        depth: int = 0
    ) -> ExtractionResult:
        """
        Extract one part (and, for containers, everything below it)

        Args:
            part: Part to extract
            base_name: Name prefix shared by all artifacts of the message
            target_dir: Period directory the artifacts are written into
            result: Accumulator; a new one is created for the root call
            depth: Current nesting depth

        Returns:
            The accumulator, with fragments and attachments in traversal order

        Raises:
            ExtractionError: If any body part cannot be read, decoded or rendered
        """
        if result is None:
            result = ExtractionResult()

        if depth > self.max_depth:
            raise ExtractionError(f"MIME nesting exceeds {self.max_depth} levels")

        category = classify(part.media_type)

        if is_attachment(part.file_name, part.disposition, category):
            name = self.attachment_saver.save(part, base_name, target_dir)
            if name:
                result.attachments.append(name)
            else:
                result.failed_attachments += 1
            return result

        if category.is_composite:
            self._walk_children(part, base_name, target_dir, result, depth)
        elif category is ContentCategory.HYPERTEXT:
            self._extract_hypertext(part, base_name, target_dir, result)
        elif category is ContentCategory.PLAIN_TEXT:
            self._extract_plain_text(part, base_name, target_dir, result)
        else:
            self.logger.debug(
                f"Skipping part with unrecognized type {sanitize_for_logging(part.media_type, 80)}"
            )

        return result

    def _walk_children(
        self,
        part: MessagePart,
        base_name: str,
        target_dir: Path,
        result: ExtractionResult,
        depth: int
    ):
        access = part.sub_parts()
        if access.status is not AccessStatus.OK:
            raise ExtractionError(f"Cannot expand multipart content: {access.error}")

        for child in access.value:
            self.walk(child, base_name, target_dir, result, depth + 1)

    def _extract_hypertext(
        self,
        part: MessagePart,
        base_name: str,
        target_dir: Path,
        result: ExtractionResult
    ):
        encoding = encoding_hint(part.media_type)
        markup = self._decode(part, encoding)
        if not markup.strip():
            return

        pdf_name = self.html_renderer.render(markup, base_name, target_dir, encoding)
        if pdf_name:
            result.artifacts.append(pdf_name)

        result.artifacts.append(
            self.text_renderer.write(markup, base_name, target_dir, "html")
        )
        result.add_text(markup)

    def _extract_plain_text(
        self,
        part: MessagePart,
        base_name: str,
        target_dir: Path,
        result: ExtractionResult
    ):
        text = self._decode(part, encoding_hint(part.media_type))
        if not text.strip():
            return

        result.artifacts.append(
            self.text_renderer.write(text, base_name, target_dir, "txt")
        )
        result.add_text(text)

    @staticmethod
    def _decode(part: MessagePart, encoding: str) -> str:
        """Decode a text part strictly; any failure fails the message"""
        access = part.raw_bytes()
        if access.status is not AccessStatus.OK:
            raise ExtractionError(f"Cannot read body part: {access.error}")

        try:
            return access.value.decode(encoding)
        except LookupError as e:
            raise ExtractionError(f"Unknown charset '{encoding}'") from e
        except UnicodeDecodeError as e:
            raise ExtractionError(f"Body is not valid {encoding}: {e}") from e
