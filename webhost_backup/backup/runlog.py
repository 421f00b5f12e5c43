"""
Run log - the ordered record of everything a backup run reports.

Every stage of the pipeline receives the same RunLog and records into it.
Entries are kept in memory so the caller can replay them (JSON response,
mail, report) and are also forwarded to the standard logging system.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List

logger = logging.getLogger(__name__)

LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    level: str
    text: str


class RunLog:
    """
    Log sink for a single backup run.
    """

    def __init__(self, timestamp_format: str = '%Y-%m-%d_%H-%M-%S'):
        """
        Initialize run log.

        Args:
            timestamp_format: strftime pattern used when rendering entries
        """
        self.timestamp_format = timestamp_format
        self.entries: List[LogEntry] = []

    def record(self, level: str, text: str):
        """
        Add an entry to the log.

        Args:
            level: One of debug, info, warning, error
            text: Log message

        Raises:
            ValueError: If level is unknown
        """
        level = level.lower()
        if level not in LEVELS:
            raise ValueError(f"Invalid log level: {level}. Valid options: {list(LEVELS.keys())}")

        self.entries.append(LogEntry(datetime.now(), level, text))
        logger.log(LEVELS[level], text)

    def debug(self, text: str):
        self.record('debug', text)

    def info(self, text: str):
        self.record('info', text)

    def warning(self, text: str):
        self.record('warning', text)

    def error(self, text: str):
        self.record('error', text)

    @property
    def has_errors(self) -> bool:
        return any(entry.level == 'error' for entry in self.entries)

    def format_entry(self, entry: LogEntry) -> str:
        return f"{entry.timestamp.strftime(self.timestamp_format)} [{entry.level}] {entry.text}"

    def lines(self) -> List[str]:
        """Render all entries as text lines, oldest first."""
        return [self.format_entry(entry) for entry in self.entries]

    def to_list(self):
        return [
            {
                'timestamp': entry.timestamp.strftime(self.timestamp_format),
                'level': entry.level,
                'text': entry.text
            }
            for entry in self.entries
        ]
