import os
import sys
import signal
from pathlib import Path
from typing import Optional, List, NoReturn

from invoice_archiver.utils.config import Config, ConfigurationError
from invoice_archiver.utils.colors import Colors
from invoice_archiver.utils.validators import check_default_credentials
from invoice_archiver.modules.errors import ConnectivityError


CONFIG_ENV_VAR = "INVOICE_ARCHIVER_CONFIG"


class AppRunner:
    """Encapsulates the startup, configuration verification, and execution logic of the Invoice Archiver."""

    def __init__(self, args: Optional[List[str]] = None) -> None:
        """
        Initialize the runner with CLI arguments.

        The config file is the first argument, else $INVOICE_ARCHIVER_CONFIG,
        else ".env".

        Args:
            args: Command line arguments (defaults to sys.argv)
        """
        self.args = args if args is not None else sys.argv
        if len(self.args) > 1:
            self.config_file = self.args[1]
        else:
            self.config_file = os.environ.get(CONFIG_ENV_VAR) or ".env"

    def run(self) -> None:
        """Execute the main application flow."""
        self.setup_signal_handlers()
        self.print_banner()
        self.ensure_config_exists()
        config = self.load_config()
        self.start_pipeline(config)

    def setup_signal_handlers(self) -> None:
        """Register handlers for graceful shutdown."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    @staticmethod
    def _signal_handler(signum, frame) -> NoReturn:
        """Handle shutdown signals."""
        print("\nReceived shutdown signal, stopping...")
        raise KeyboardInterrupt

    def print_banner(self) -> None:
        """Print the application startup banner."""
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print(Colors.colorize("Invoice Archiver", Colors.BOLD + Colors.CYAN))
        print(Colors.colorize("Mailbox to monthly archive of records, bodies and attachments", Colors.GREY))
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print()

    def ensure_config_exists(self) -> None:
        """Exit with an error if the configuration file is missing."""
        if Path(self.config_file).exists():
            return
        self._handle_missing_config()

    def _handle_missing_config(self) -> NoReturn:
        print(f"Error: Configuration file '{self.config_file}' not found", file=sys.stderr)
        print(
            f"Pass it as the first argument or set {CONFIG_ENV_VAR}. "
            "You can start from: cp .env.example .env",
            file=sys.stderr
        )
        sys.exit(1)

    def load_config(self) -> Config:
        """Load and validate the configuration; exits on any problem."""
        try:
            config = Config(self.config_file)
            config.validate()
        except ConfigurationError as e:
            print(Colors.error(f"Configuration Error: {e}"), file=sys.stderr)
            sys.exit(1)

        errors = check_default_credentials(config)
        if errors:
            print(f"\n{Colors.RED}Configuration Error: Default values detected{Colors.RESET}", file=sys.stderr)
            for error in errors:
                print(f"  - {Colors.YELLOW}{error}{Colors.RESET}", file=sys.stderr)
            print(f"\nPlease edit {Colors.BOLD}{self.config_file}{Colors.RESET} with your actual settings.", file=sys.stderr)
            sys.exit(1)

        return config

    def start_pipeline(self, config: Config) -> None:
        """Instantiate the pipeline and run one batch."""
        from invoice_archiver.main import InvoiceArchivePipeline

        pipeline = InvoiceArchivePipeline(config)
        try:
            report = pipeline.run()
        except ConnectivityError as e:
            pipeline.logger.error(f"Fatal error: {e}")
            print(Colors.error(f"Fatal error: {e}"), file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            pipeline.logger.info("Run interrupted")
            sys.exit(130)

        print()
        print(Colors.run_summary(len(report.archived), len(report.failed), report.skipped))
