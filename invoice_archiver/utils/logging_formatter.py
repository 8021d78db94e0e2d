import logging
import copy
from invoice_archiver.utils.colors import Colors


class ColoredFormatter(logging.Formatter):
    """
    Custom formatter to add colors to log levels and specific messages.
    Highlights run milestones and archived messages, dims skipped ones.
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GREY,
        logging.INFO: Colors.BLUE,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED
    }

    def format(self, record):
        # Work on a copy so the file handler never sees ANSI codes
        record = copy.copy(record)

        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        record.levelname = f"{color}{record.levelname}{Colors.RESET}"

        if isinstance(record.msg, str):
            if record.msg.startswith("==="):
                record.msg = f"{Colors.MAGENTA}{Colors.BOLD}{record.msg}{Colors.RESET}"
            elif record.msg.startswith("Skipping message"):
                record.msg = f"{Colors.GREY}{record.msg}{Colors.RESET}"
            elif record.msg.startswith("Archived message"):
                record.msg = f"{Colors.GREEN}{record.msg}{Colors.RESET}"

        return super().format(record)
