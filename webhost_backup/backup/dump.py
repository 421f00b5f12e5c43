"""
Database dump engines.

A dump engine writes a plaintext dump of one database to a file and
reports the exit status of the dump utility (0 = success).
"""

import logging
import subprocess
from abc import ABC, abstractmethod

from webhost_backup.models import DatabaseCredential
from .compression import COMMAND_NOT_FOUND

logger = logging.getLogger(__name__)


class DumpError(Exception):
    """Raised when a database dump fails."""

    def __init__(self, database_name: str, exit_status: int):
        self.database_name = database_name
        self.exit_status = exit_status
        super().__init__(f"Couldn't dump database {database_name}, Error {exit_status}.")


class DumpEngine(ABC):
    """
    Abstract base class for database dump engines.
    """

    @abstractmethod
    def dump(self, credential: DatabaseCredential, output_path: str) -> int:
        """
        Dump a database into a file.

        Args:
            credential: Database name and login
            output_path: File the dump is written to

        Returns:
            Exit status of the dump utility
        """
        pass


class MySQLDumpEngine(DumpEngine):
    """
    Dump engine for MySQL databases using mysqldump.

    Produces .sql files that can be restored using the mysql client.
    """

    binary = 'mysqldump'

    def __init__(self, host: str = None, additional_options: list = None):
        self.host = host
        self.additional_options = additional_options or []

    def build_command(self, credential: DatabaseCredential) -> list:
        cmd = [
            self.binary,
            f"--user={credential.user}",
            f"--password={credential.password}",
            "--allow-keywords",
            "--add-drop-table",
            "--complete-insert",
            "--quote-names",
        ]
        if self.host:
            cmd.append(f"--host={self.host}")
        cmd.extend(self.additional_options)
        cmd.append(credential.name)
        return cmd

    @staticmethod
    def redact(cmd: list) -> str:
        return ' '.join(
            '--password=***' if part.startswith('--password=') else part
            for part in cmd
        )

    def dump(self, credential: DatabaseCredential, output_path: str) -> int:
        cmd = self.build_command(credential)
        logger.info(f"Executing {self.redact(cmd)}")

        with open(output_path, 'wb') as out:
            try:
                result = subprocess.run(cmd, stdout=out, stderr=subprocess.PIPE)
            except FileNotFoundError:
                logger.error(f"{self.binary} not found on PATH")
                return COMMAND_NOT_FOUND

        if result.stderr:
            # mysqldump writes warnings to stderr
            stderr_text = result.stderr.decode('utf-8', errors='replace')
            # Filter out password warning
            if "Using a password on the command line" not in stderr_text:
                logger.warning(f"mysqldump stderr: {stderr_text}")

        return result.returncode
