"""
Artifact Renderers
Write the files extracted from a message into its period directory

Three renderers share one Disambiguator:
- TextRenderer: raw body text as <base>-<token>.email.<ext>
- HtmlDocumentRenderer: HTML body rendered to <base>-<token>.email.pdf
- AttachmentSaver: attachment bytes as <base>--<rewritten name>

Every file is opened in exclusive-create mode, so an existing file is never
overwritten; the only deletions are a renderer removing its own partial output.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional

from bs4 import BeautifulSoup
from xhtml2pdf import pisa

from .errors import RenderError
from .message_parts import MessagePart
from ..utils.sanitization import sanitize_for_logging
from ..utils.security_validators import MAX_FILENAME_BYTES, sanitize_filename, truncate_utf8


logger = logging.getLogger(__name__)

PDF_SUFFIX = ".email.pdf"
MAX_EXTENSION_BYTES = 16


class Disambiguator:
    """
    Issues file name tokens that never repeat within a process

    Tokens are millisecond wall-clock values, bumped past the previous token
    when two requests land in the same millisecond.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next_token(self) -> str:
        with self._lock:
            now_ms = time.time_ns() // 1_000_000
            self._last = max(now_ms, self._last + 1)
            return str(self._last)


def _remove_partial(path: Path):
    """Best-effort removal of a file this module created"""
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial file {path}: {e}")


class TextRenderer:
    """Persists body text verbatim"""

    def __init__(self, disambiguator: Disambiguator):
        self.disambiguator = disambiguator

    def write(self, text: str, base_name: str, target_dir: Path, extension: str = "txt") -> str:
        """
        Write a text artifact

        Returns:
            The written file name

        Raises:
            RenderError: If the file cannot be written
        """
        file_name = f"{base_name}-{self.disambiguator.next_token()}.email.{extension}"
        path = Path(target_dir) / file_name

        try:
            with open(path, "x", encoding="utf-8") as fh:
                fh.write(text)
        except FileExistsError as e:
            raise RenderError(f"Refusing to overwrite {path}") from e
        except (OSError, UnicodeError) as e:
            _remove_partial(path)
            raise RenderError(f"Cannot write {path}: {e}") from e

        return file_name


class HtmlDocumentRenderer:
    """
    Renders HTML bodies to PDF

    PATTERN RECOGNITION: Two stages, like a browser's print path. BeautifulSoup
    first turns tag soup into well-formed markup (unclosed tags closed,
    entities normalised), then xhtml2pdf lays the result out on fixed pages.
    """

    def __init__(self, disambiguator: Disambiguator):
        self.disambiguator = disambiguator
        self.logger = logging.getLogger("HtmlDocumentRenderer")

    @staticmethod
    def clean_markup(markup: str) -> str:
        """Normalise markup; returns an empty string when nothing is left to render"""
        if not markup or not markup.strip():
            return ""

        soup = BeautifulSoup(markup, "html.parser")
        if not soup.get_text(strip=True) and soup.find(["img", "table", "hr"]) is None:
            return ""

        if soup.find("html") is None:
            return f"<html><body>{soup}</body></html>"
        return str(soup)

    def render(
        self,
        markup: str,
        base_name: str,
        target_dir: Path,
        encoding: str = "utf-8"
    ) -> Optional[str]:
        """
        Render markup to a PDF in the target directory

        Args:
            markup: Decoded HTML body
            base_name: Message base name (subject slug)
            target_dir: Period directory
            encoding: Charset the body was declared with

        Returns:
            The PDF file name, or None when the cleaned markup is empty

        Raises:
            RenderError: On any cleanup, layout or write failure
        """
        try:
            cleaned = self.clean_markup(markup)
        except Exception as e:
            raise RenderError(f"Markup cleanup failed: {e}") from e

        if not cleaned:
            self.logger.debug(f"Nothing to render for {sanitize_for_logging(base_name)}")
            return None

        file_name = f"{base_name}-{self.disambiguator.next_token()}{PDF_SUFFIX}"
        path = Path(target_dir) / file_name

        try:
            fh = open(path, "xb")
        except OSError as e:
            raise RenderError(f"Cannot create {path}: {e}") from e

        try:
            with fh:
                status = pisa.CreatePDF(cleaned, dest=fh, encoding=encoding)
            if status.err:
                raise RenderError(f"PDF layout reported {status.err} error(s) for {file_name}")
        except RenderError:
            _remove_partial(path)
            raise
        except Exception as e:
            _remove_partial(path)
            raise RenderError(f"PDF rendering failed for {file_name}: {e}") from e

        self.logger.debug(f"Rendered {file_name}")
        return file_name


class AttachmentSaver:
    """
    Copies attachment payloads verbatim

    Failures here are non-fatal: the saver logs and returns None,
    and the message is archived without that file.
    """

    def __init__(self, disambiguator: Disambiguator):
        self.disambiguator = disambiguator
        self.logger = logging.getLogger("AttachmentSaver")

    def build_name(self, base_name: str, original_name: Optional[str]) -> str:
        """
        Build the output name: every '.' in the original name becomes
        '--<token>.', so repeated attachment names never collide. Names that
        would pass MAX_FILENAME_BYTES are shortened.

        Example:
            invoice.pdf -> <base>--invoice--1711000000000.pdf
        """
        token = self.disambiguator.next_token()
        safe_name = sanitize_filename(original_name or "")

        if "." in safe_name:
            rewritten = safe_name.replace(".", f"--{token}.")
        else:
            rewritten = f"{safe_name}--{token}"

        budget = MAX_FILENAME_BYTES - len(f"{base_name}--".encode("utf-8"))
        if len(rewritten.encode("utf-8")) > budget:
            rewritten = self._shorten(safe_name, token, budget)

        return f"{base_name}--{rewritten}"

    @staticmethod
    def _shorten(safe_name: str, token: str, budget: int) -> str:
        """
        Fit an overlong rewritten name into budget bytes: only the last
        extension gets a token, inner dots become underscores and the stem
        is cut
        """
        stem, dot, extension = safe_name.rpartition(".")
        if dot:
            suffix = f"--{token}.{truncate_utf8(extension, MAX_EXTENSION_BYTES)}"
        else:
            stem, suffix = safe_name, f"--{token}"

        stem = stem.replace(".", "_")
        return truncate_utf8(stem, budget - len(suffix.encode("utf-8"))) + suffix

    def save(self, part: MessagePart, base_name: str, target_dir: Path) -> Optional[str]:
        """
        Save one attachment

        Returns:
            The saved file name, or None if the payload could not be read or written
        """
        safe_original = sanitize_for_logging(part.file_name or "")

        access = part.raw_bytes()
        if not access.succeeded:
            self.logger.warning(
                f"Skipping attachment '{safe_original}': {access.error}"
            )
            return None

        file_name = self.build_name(base_name, part.file_name)
        path = Path(target_dir) / file_name

        try:
            with open(path, "xb") as fh:
                fh.write(access.value)
        except FileExistsError:
            self.logger.warning(f"Attachment target {file_name} already exists; skipping")
            return None
        except OSError as e:
            self.logger.warning(f"Could not save attachment '{safe_original}': {e}")
            _remove_partial(path)
            return None

        self.logger.info(f"Saved attachment {file_name}")
        return file_name
