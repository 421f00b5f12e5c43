"""
Compression handlers for backup archives.

Supports two algorithms:
- gz: Gzip (fast)
- bz2: Bzip2 (small)

Folders and files are written to tar archives with tarfile. Database dumps
are compressed in place by the external gzip/bzip2 binaries.
"""

import os
import shutil
import logging
import subprocess
import tarfile
import tempfile

from webhost_backup.config import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = ('gz', 'bz2')

# Exit status reported when the compressor binary cannot be started
COMMAND_NOT_FOUND = 127


class ArchiveError(Exception):
    """Raised when a tar archive cannot be created or appended to."""
    pass


class CompressionError(Exception):
    """
    Raised when compressing a database dump fails.

    The dump itself already exists at that point, so its size (and the size
    of whatever the compressor left behind) is carried for reporting.
    """

    def __init__(self, message: str, source_size: int = 0, archive_size: int = 0):
        self.source_size = source_size
        self.archive_size = archive_size
        super().__init__(message)


def validate_algorithm(algorithm: str) -> str:
    """
    Check that a compression algorithm is supported.

    Raises:
        ConfigurationError: If algorithm is not gz or bz2
    """
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ConfigurationError(
            f"Unsupported compression algorithm {algorithm}. "
            f"Valid options: {list(SUPPORTED_ALGORITHMS)}"
        )
    return algorithm


def generate_archive_filename(backup_prefix: str, kind_tag: str, timestamp: str, algorithm: str) -> str:
    """
    Generate the archive filename for a folder or file backup.

    Format: {backup_prefix}_{kind_tag}_{timestamp}.tar.{algorithm}

    Args:
        backup_prefix: Site prefix
        kind_tag: 'folder' or 'file'
        timestamp: Already formatted run timestamp
        algorithm: 'gz' or 'bz2'

    Returns:
        Filename (without path)
    """
    return f"{backup_prefix}_{kind_tag}_{timestamp}.tar.{algorithm}"


def generate_dump_filename(backup_prefix: str, database_name: str, timestamp: str) -> str:
    """
    Generate the intermediate (uncompressed) dump filename for a database.

    Format: {backup_prefix}_{database_name}_{timestamp}.sql
    """
    return f"{backup_prefix}_{database_name}_{timestamp}.sql"


def add_to_archive(source_path: str, archive_path: str, algorithm: str, arcname: str) -> str:
    """
    Add a file or directory to a compressed tar archive.

    If the archive does not exist yet it is created. If it exists the new
    content is appended: the existing members are copied into a temporary
    archive next to it, the source is added, and the temporary archive
    replaces the old one. Existing content is never discarded.

    Args:
        source_path: File or directory to add (directories recursively)
        archive_path: Full path of the .tar.gz / .tar.bz2 archive
        algorithm: 'gz' or 'bz2'
        arcname: Name of the source inside the archive

    Returns:
        archive_path

    Raises:
        ConfigurationError: If algorithm is unsupported
        ArchiveError: If writing the archive fails
    """
    validate_algorithm(algorithm)
    write_mode = f'w:{algorithm}'

    if not os.path.exists(archive_path):
        try:
            with tarfile.open(archive_path, write_mode) as tar:
                tar.add(source_path, arcname=arcname, recursive=True)
            return archive_path
        except Exception as e:
            _remove_partial(archive_path)
            raise ArchiveError(f"Failed to create archive {archive_path}: {e}")

    fd, temp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(archive_path)}.",
        suffix='.tmp',
        dir=os.path.dirname(archive_path) or '.'
    )
    os.close(fd)

    try:
        with tarfile.open(archive_path, f'r:{algorithm}') as existing, \
                tarfile.open(temp_path, write_mode) as tar:
            for member in existing:
                fileobj = existing.extractfile(member) if member.isreg() else None
                tar.addfile(member, fileobj)
            tar.add(source_path, arcname=arcname, recursive=True)

        # mkstemp creates 0600 files, keep the mode of the archive being replaced
        shutil.copymode(archive_path, temp_path)
        os.replace(temp_path, archive_path)
        return archive_path

    except Exception as e:
        _remove_partial(temp_path)
        raise ArchiveError(f"Failed to append to archive {archive_path}: {e}")


def _remove_partial(path: str):
    """Remove a partially written file, ignoring a file that is already gone."""
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Could not remove partial file {path}: {e}")


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Returns:
        File size in bytes, 0 if the file does not exist
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        return 0


class CompressionEngine:
    """
    Compresses a file in place with an external binary.

    compress(path) replaces `path` by `path.<extension>` and returns the
    exit status of the binary (0 = success).
    """

    algorithm = None
    binary = None

    @property
    def extension(self) -> str:
        return self.algorithm

    def build_command(self, path: str) -> list:
        # -f: overwrite an existing archive of the same name
        return [self.binary, '-f', path]

    def compress(self, path: str) -> int:
        """
        Compress a file in place.

        Args:
            path: File to compress

        Returns:
            Exit status of the compressor
        """
        cmd = self.build_command(path)
        logger.debug(f"Running {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True)
        except FileNotFoundError:
            logger.error(f"{self.binary} not found on PATH")
            return COMMAND_NOT_FOUND

        if result.returncode != 0 and result.stderr:
            logger.warning(f"{self.binary} stderr: {result.stderr.decode('utf-8', errors='replace')}")

        return result.returncode

    def compressed_path(self, path: str) -> str:
        return f"{path}.{self.extension}"


class GzipEngine(CompressionEngine):
    algorithm = 'gz'
    binary = 'gzip'


class Bzip2Engine(CompressionEngine):
    algorithm = 'bz2'
    binary = 'bzip2'


def get_compression_engine(algorithm: str) -> CompressionEngine:
    """
    Factory function to create the compression engine for an algorithm.

    Raises:
        ConfigurationError: If algorithm is not gz or bz2
    """
    validate_algorithm(algorithm)
    if algorithm == 'gz':
        return GzipEngine()
    return Bzip2Engine()
