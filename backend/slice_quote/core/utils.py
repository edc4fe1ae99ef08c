# core/utils.py

import logging
import math
import os
import secrets
import time
from typing import Optional

logger = logging.getLogger(__name__)


def new_opaque_id(prefix: Optional[str] = None) -> str:
    """
    Builds a collision-resistant identifier from the current epoch milliseconds
    and a random hex suffix, e.g. "1718203040123-9f2c1a" or "Q-1718203040123-9f2c1a".
    """
    core = f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"
    return f"{prefix}-{core}" if prefix else core


def remove_file(path: Optional[str]) -> bool:
    """
    Deletes a file if it exists. Failures are logged, never raised.

    Returns:
        True if a file was removed.
    """
    if not path:
        return False
    try:
        os.unlink(path)
        logger.debug(f"Removed file: {path}")
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to remove file '{path}': {e}")
        return False


def format_time(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., "1h 30m", "4m 15s").

    Args:
        seconds: The duration in seconds.

    Returns:
        A formatted string representation of the duration, or "N/A" if input is invalid.
    """
    if seconds is None or not isinstance(seconds, (int, float)) or seconds < 0:
        return "N/A"

    minutes, sec = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)

    parts = []
    if hours > 0:
        parts.append(f"{int(hours)}h")
    if minutes > 0:
        parts.append(f"{int(minutes)}m")
    # Seconds are omitted once the duration reaches an hour
    if hours == 0 and sec > 0:
        parts.append(f"{int(math.ceil(sec))}s")

    if not parts:
        return "0s"

    return " ".join(parts)


def round_money(value: float) -> float:
    """Rounds a currency amount to 2 decimal places."""
    return round(value, 2)
