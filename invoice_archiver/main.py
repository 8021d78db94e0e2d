#!/usr/bin/env python3
"""
Invoice Archiver
One-shot run: fetch the configured day window from the mailbox, archive every
routed message into month-named directories, then exit
"""

import sys
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from invoice_archiver.utils.config import Config
from invoice_archiver.utils.logging_formatter import ColoredFormatter
from invoice_archiver.utils.metrics import RunMetrics
from invoice_archiver.utils.structured_logging import JSONFormatter
from invoice_archiver.modules.batch_driver import BatchDriver, BatchReport
from invoice_archiver.modules.errors import ConnectivityError
from invoice_archiver.modules.imap_connection import IMAPConnection, date_window
from invoice_archiver.modules.mime_walker import MimeTreeWalker


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class InvoiceArchivePipeline:
    """Main pipeline orchestrator"""

    def __init__(self, config: Config):
        """
        Initialize pipeline

        Args:
            config: Loaded configuration, passed to every component
        """
        self.config = config

        self._setup_logging()

        self.logger = logging.getLogger("InvoiceArchivePipeline")
        self.logger.info("Initializing Invoice Archiver")

        self.metrics = RunMetrics()
        self.connection = IMAPConnection(
            self.config.mailbox,
            self.config.system.rate_limit_delay
        )
        self.driver = BatchDriver(
            self.config.archive,
            MimeTreeWalker(),
            self.metrics
        )

    def _setup_logging(self):
        """Setup logging configuration"""
        log_path = Path(self.config.system.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        level_name = str(self.config.system.log_level).upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(ColoredFormatter(LOG_FORMAT))

        file_handler = logging.FileHandler(self.config.system.log_file, encoding="utf-8")
        if self.config.system.log_format == "json":
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        logging.basicConfig(level=level, handlers=[console, file_handler], force=True)

        if level_name not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logging.getLogger("InvoiceArchivePipeline").warning(
                "Invalid log level '%s'; defaulting to INFO",
                self.config.system.log_level
            )

    def run(self, now: Optional[datetime] = None) -> BatchReport:
        """
        Run one batch

        Raises:
            ConnectivityError: If the mailbox cannot be reached or opened
        """
        now = now or datetime.now()
        window = date_window(now, self.config.archive.delta_start, self.config.archive.delta_end)

        self.logger.info(
            f"=== Archive run for {window[0]:%Y-%m-%d} .. {window[1]:%Y-%m-%d} ==="
        )

        if not self.connection.connect():
            raise ConnectivityError(
                f"Could not connect to {self.config.mailbox.imap_server}"
            )

        try:
            if not self.connection.select_folder(self.config.mailbox.folder):
                raise ConnectivityError(
                    f"Could not open folder {self.config.mailbox.folder}"
                )

            message_ids = self.connection.search_window(*window)
            messages = self.connection.fetch_messages(message_ids)
            if not messages:
                self.logger.info("No messages in the configured window")

            report = self.driver.run(messages, window)
        finally:
            self.connection.disconnect()

        self.logger.info(
            f"=== Run complete: {len(report.archived)} archived, "
            f"{len(report.failed)} failed, {report.skipped} skipped ==="
        )
        self.logger.info(f"Run metrics: {self.metrics.get_summary()}")
        return report


def main(args=None):
    """Main entry point"""
    from invoice_archiver.app_runner import AppRunner
    AppRunner(args).run()


if __name__ == "__main__":
    main()
