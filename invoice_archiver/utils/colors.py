"""
Console styling for the banner, the run summary and console log lines

Output is plain when NO_COLOR is set or stdout is not a terminal, so cron
mail and redirected runs carry no escape codes.
"""

import os
import sys


def _color_enabled() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


class Colors:
    """ANSI codes (empty strings when color is off) and helper methods"""
    ENABLED = _color_enabled()

    RESET = "\033[0m" if ENABLED else ""
    BOLD = "\033[1m" if ENABLED else ""

    RED = "\033[31m" if ENABLED else ""
    GREEN = "\033[32m" if ENABLED else ""
    YELLOW = "\033[33m" if ENABLED else ""
    BLUE = "\033[34m" if ENABLED else ""
    MAGENTA = "\033[35m" if ENABLED else ""
    CYAN = "\033[36m" if ENABLED else ""
    GREY = "\033[90m" if ENABLED else ""

    @classmethod
    def colorize(cls, text: str, color: str) -> str:
        if not cls.ENABLED:
            return text
        return f"{color}{text}{cls.RESET}"

    @classmethod
    def error(cls, text: str) -> str:
        return cls.colorize(text, cls.RED)

    @classmethod
    def run_summary(cls, archived: int, failed: int, skipped: int) -> str:
        """One-line outcome of a batch, e.g. "Archived 2, failed 1, skipped 5"
        with the counts that need attention highlighted"""
        return ", ".join((
            cls.colorize(f"Archived {archived}", cls.GREEN if archived else cls.GREY),
            cls.colorize(f"failed {failed}", cls.RED if failed else cls.GREY),
            cls.colorize(f"skipped {skipped}", cls.GREY),
        ))
