"""
Period Locator
Maps a message's received timestamp to its month-named output directory
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Union

from .errors import PeriodDirectoryError


logger = logging.getLogger(__name__)


def period_name(timestamp: datetime) -> str:
    """
    Build the directory name for the month a timestamp falls in

    Aware timestamps are converted to local time first, so a message received
    late on the last day of a month lands where the operator expects it.

    Example:
        >>> period_name(datetime(2024, 3, 15))
        'MARCH_2024'
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone()
    return timestamp.strftime("%B_%Y").upper()


def locate(timestamp: datetime, output_root: Union[str, Path]) -> Path:
    """
    Return the period directory for a timestamp, creating it if absent

    Args:
        timestamp: Received timestamp of the message
        output_root: Root directory all period directories live under

    Returns:
        Path of the (existing) period directory

    Raises:
        PeriodDirectoryError: If the directory cannot be created
    """
    target = Path(output_root) / period_name(timestamp)

    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PeriodDirectoryError(f"Cannot create period directory {target}: {e}") from e

    logger.debug(f"Using period directory {target}")
    return target
