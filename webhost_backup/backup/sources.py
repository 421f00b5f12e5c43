"""
Source handling for backup items.

LocalSource resolves the folders and files a site declares (relative to the
webspace root) and derives the archive each item is written to.
"""

import os
from typing import Optional

from webhost_backup.models import BackupTarget, DatabaseCredential, ItemKind, Site
from webhost_backup.utils.sizes import get_directory_size
from .compression import generate_archive_filename, generate_dump_filename


class SourceMissingError(Exception):
    """Raised when a declared folder or file does not exist."""
    pass


class LocalSource:
    """
    Handler for sources on the local webspace.

    Maps declared site items onto absolute source paths below the webspace
    root and onto archive paths inside the backup directory.
    """

    def __init__(self, source_root: str, target_directory: str):
        """
        Initialize local source handler.

        Args:
            source_root: Webspace root all folder/file declarations are relative to
            target_directory: Backup directory archives are written to
        """
        self.source_root = os.path.abspath(source_root)
        self.target_directory = os.path.abspath(target_directory)

    def absolute_path(self, relative_path: str) -> str:
        return os.path.normpath(os.path.join(self.source_root, relative_path.lstrip('/')))

    def is_within_root(self, path: str) -> bool:
        """Whether a path (after resolving '..') is the webspace root or below it."""
        path = os.path.abspath(path)
        return path == self.source_root or path.startswith(self.source_root.rstrip(os.sep) + os.sep)

    def display_path(self, path: str) -> str:
        """Path relative to the webspace root when it lies below it, otherwise unchanged."""
        root = self.source_root.rstrip(os.sep) + os.sep
        if path.startswith(root):
            return path[len(root):]
        return path

    def arcname(self, source_absolute: str) -> str:
        """Name of a source inside its archive (relative to the webspace root)."""
        return os.path.relpath(source_absolute, self.source_root)

    def folder_target(self, site: Site, folder: str, timestamp: str, algorithm: str) -> BackupTarget:
        filename = generate_archive_filename(site.backup_prefix, 'folder', timestamp, algorithm)
        return BackupTarget(
            kind=ItemKind.FOLDER,
            source=folder,
            source_absolute=self.absolute_path(folder),
            archive_filename=filename,
            archive_absolute=os.path.join(self.target_directory, filename)
        )

    def file_target(self, site: Site, file: str, timestamp: str, algorithm: str) -> BackupTarget:
        filename = generate_archive_filename(site.backup_prefix, 'file', timestamp, algorithm)
        return BackupTarget(
            kind=ItemKind.FILE,
            source=file,
            source_absolute=self.absolute_path(file),
            archive_filename=filename,
            archive_absolute=os.path.join(self.target_directory, filename)
        )

    def database_target(self, site: Site, credential: DatabaseCredential,
                        timestamp: str, algorithm: str) -> BackupTarget:
        filename = f"{generate_dump_filename(site.backup_prefix, credential.name, timestamp)}.{algorithm}"
        return BackupTarget(
            kind=ItemKind.DATABASE,
            source=credential.name,
            source_absolute=None,
            archive_filename=filename,
            archive_absolute=os.path.join(self.target_directory, filename)
        )

    def measure(self, target: BackupTarget) -> int:
        """
        Get the uncompressed size of a folder or file source.

        Returns:
            Size in bytes, 0 for missing sources and databases
        """
        if target.source_absolute is None or not self.is_within_root(target.source_absolute):
            return 0
        return get_directory_size(target.source_absolute)

    def resolve(self, target: BackupTarget) -> str:
        """
        Check that a folder or file source exists with the right type.

        Returns:
            Absolute source path

        Raises:
            SourceMissingError: If the folder/file does not exist or lies outside
                the webspace root
        """
        path = target.source_absolute
        if not self.is_within_root(path):
            raise SourceMissingError(f"Source {target.source} is outside the webspace root.")
        if target.kind == ItemKind.FOLDER and not os.path.isdir(path):
            raise SourceMissingError(f"Source folder {path} doesn't exist.")
        if target.kind == ItemKind.FILE and not os.path.isfile(path):
            raise SourceMissingError(f"Source file {path} doesn't exist.")
        return path


def dump_path_for(target: BackupTarget, algorithm: str) -> Optional[str]:
    """Path of the uncompressed dump a database archive is produced from."""
    suffix = f".{algorithm}"
    if target.kind != ItemKind.DATABASE or not target.archive_absolute.endswith(suffix):
        return None
    return target.archive_absolute[:-len(suffix)]
