"""
Configuration Management Module
Handles loading and validation of environment variables and settings

The Config object is built once at startup and handed to every component
that needs it; nothing in the package reads the environment on its own.
"""

import os
from typing import Dict, List, Mapping, Optional
from dataclasses import dataclass
from dotenv import dotenv_values


FILTER_MODE_RECIPIENT = "recipient"
FILTER_MODE_SUBJECT = "subject"
FILTER_MODES = (FILTER_MODE_RECIPIENT, FILTER_MODE_SUBJECT)


class ConfigurationError(ValueError):
    """Raised when the configuration cannot be used to start a run"""


@dataclass
class MailboxConfig:
    """Configuration for the IMAP mailbox"""
    imap_server: str
    imap_port: int
    username: str
    password: str
    folder: str
    use_ssl: bool
    verify_ssl: bool


@dataclass
class ArchiveConfig:
    """Configuration for message selection and output"""
    output_dir: str
    filter_email: str
    filter_mode: str
    relevant_subjects: List[str]
    delta_start: int
    delta_end: int


@dataclass
class SystemConfig:
    """Configuration for system settings"""
    log_level: str
    log_file: str
    log_format: str
    rate_limit_delay: int


class Config:
    """Main configuration class"""

    def __init__(self, env_file: str = ".env", environ: Optional[Mapping[str, str]] = None):
        """
        Initialize configuration from environment file

        Values from the process environment take precedence over the file.

        Args:
            env_file: Path to environment file (default: .env)
            environ: Environment mapping to overlay (default: os.environ)
        """
        file_values = {
            key: value
            for key, value in dotenv_values(env_file).items()
            if value is not None
        }
        overlay = os.environ if environ is None else environ
        self._values: Dict[str, str] = {**file_values, **overlay}

        self.mailbox = self._load_mailbox_config()
        self.archive = self._load_archive_config()
        self.system = self._load_system_config()

    def _get(self, key: str, default: str = "") -> str:
        return self._values.get(key, default)

    def _get_int(self, key: str, default: int) -> int:
        raw = self._get(key, str(default)).strip()
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(f"{key} must be an integer, got '{raw}'")

    def _get_bool(self, key: str, default: bool = False) -> bool:
        """Convert a setting to boolean"""
        value = self._get(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    def _load_mailbox_config(self) -> MailboxConfig:
        """Load mailbox configuration"""
        return MailboxConfig(
            imap_server=self._get("IMAP_SERVER"),
            imap_port=self._get_int("IMAP_PORT", 993),
            username=self._get("IMAP_USERNAME"),
            password=self._get("IMAP_PASSWORD"),
            folder=self._get("IMAP_FOLDER", "INBOX") or "INBOX",
            use_ssl=self._get_bool("IMAP_USE_SSL", True),
            verify_ssl=self._get_bool("IMAP_VERIFY_SSL", True),
        )

    def _load_archive_config(self) -> ArchiveConfig:
        """Load selection and output configuration"""
        return ArchiveConfig(
            output_dir=self._get("OUTPUT_DIR"),
            filter_email=self._get("FILTER_EMAIL").strip(),
            filter_mode=self._get("FILTER_MODE", FILTER_MODE_RECIPIENT).strip().lower(),
            relevant_subjects=self._parse_list(self._get("RELEVANT_SUBJECTS")),
            delta_start=self._get_int("DELTA_START", 1),
            delta_end=self._get_int("DELTA_END", 1),
        )

    def _load_system_config(self) -> SystemConfig:
        """Load system configuration"""
        return SystemConfig(
            log_level=self._get("LOG_LEVEL", "INFO"),
            log_file=self._get("LOG_FILE", "logs/invoice_archiver.log"),
            log_format=self._get("LOG_FORMAT", "text").strip().lower(),
            rate_limit_delay=self._get_int("RATE_LIMIT_DELAY", 1),
        )

    @staticmethod
    def _parse_list(value: str) -> List[str]:
        """Normalize a comma/newline separated setting into a clean list."""
        if not value:
            return []

        return [
            item.strip()
            for item in value.replace("\n", ",").split(",")
            if item.strip()
        ]

    def validate(self) -> bool:
        """
        Validate configuration

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.mailbox.imap_server:
            raise ConfigurationError("IMAP_SERVER is not set")

        if not self.mailbox.username or not self.mailbox.password:
            raise ConfigurationError("Missing IMAP credentials (IMAP_USERNAME / IMAP_PASSWORD)")

        if not self.archive.output_dir:
            raise ConfigurationError("OUTPUT_DIR is not set")

        if self.archive.filter_mode not in FILTER_MODES:
            raise ConfigurationError(
                f"FILTER_MODE must be one of {', '.join(FILTER_MODES)}, "
                f"got '{self.archive.filter_mode}'"
            )

        if self.archive.filter_mode == FILTER_MODE_RECIPIENT and not self.archive.filter_email:
            raise ConfigurationError("FILTER_EMAIL is required in recipient filter mode")

        if self.archive.filter_mode == FILTER_MODE_SUBJECT and not self.archive.relevant_subjects:
            raise ConfigurationError("RELEVANT_SUBJECTS is required in subject filter mode")

        if self.archive.delta_start < 0 or self.archive.delta_end < 0:
            raise ConfigurationError("DELTA_START and DELTA_END must not be negative")

        if self.archive.delta_end > self.archive.delta_start:
            raise ConfigurationError(
                "DELTA_END must not exceed DELTA_START (the window would be empty)"
            )

        return True
