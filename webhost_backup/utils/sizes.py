"""
Size and time helpers used for logging and reporting.
"""

import math
import os
import time


_SIZE_UNITS = 'BKMGTP'


def get_directory_size(path: str) -> int:
    """
    Get the total size of all files below a path.

    Args:
        path: Directory (walked recursively) or regular file

    Returns:
        Size in bytes, 0 if the path does not exist
    """
    if not path or not os.path.exists(path):
        return 0

    if os.path.isfile(path):
        return os.path.getsize(path)

    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            file_path = os.path.join(root, name)
            try:
                if not os.path.islink(file_path):
                    total += os.path.getsize(file_path)
            except OSError:
                # Vanished while walking
                continue
    return total


def human_filesize(size_bytes: int, decimals: int = 2) -> str:
    """
    Format a byte count for display.

    The unit is picked from the number of decimal digits, so 1000 bytes
    is shown as 0.98K rather than 1000.00B.

    Args:
        size_bytes: Size in bytes
        decimals: Digits after the decimal point

    Returns:
        Formatted size such as '512.00B' or '1.50M'
    """
    size_bytes = int(size_bytes)
    factor = math.floor((len(str(abs(size_bytes))) - 1) / 3)
    factor = min(factor, len(_SIZE_UNITS) - 1)
    return f"{size_bytes / 1024 ** factor:.{decimals}f}{_SIZE_UNITS[factor]}"


def percent(ratio: float, decimals: int = 2) -> str:
    """Format a ratio (0.5) as a percentage string ('50.00')."""
    return f"{ratio * 100:.{decimals}f}"


def usage_percent(used: int, quota: int, decimals: int = 2) -> str:
    """Percentage of the quota in use, 'n/a' when there is no quota."""
    if quota <= 0:
        return 'n/a'
    return percent(used / quota, decimals)


def elapsed_seconds(start: float) -> int:
    """Whole seconds since a time.monotonic() reading."""
    return int(time.monotonic() - start)
