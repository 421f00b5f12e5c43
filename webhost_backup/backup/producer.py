"""
Archive producer - turns one backup item into one archive file.

Folders and files are added to a tar archive (created or appended to).
Databases are dumped to an intermediate .sql file which is then compressed
in place, leaving only the .sql.<algorithm> archive behind.
"""

import os
from typing import Optional, Tuple

from webhost_backup.models import BackupTarget, DatabaseCredential, ItemKind
from webhost_backup.utils.sizes import human_filesize
from .compression import (
    CompressionEngine,
    CompressionError,
    add_to_archive,
    get_archive_size
)
from .dump import DumpEngine, DumpError, MySQLDumpEngine
from .runlog import RunLog
from .sources import LocalSource, dump_path_for


class ArchiveProducer:
    """
    Produces the archive for a single backup target.
    """

    def __init__(self, source: LocalSource, log: RunLog, dump_engine: Optional[DumpEngine] = None):
        """
        Initialize archive producer.

        Args:
            source: Resolver for webspace folders/files
            log: Run log to record progress in
            dump_engine: Engine used for database dumps (mysqldump by default)
        """
        self.source = source
        self.log = log
        self.dump_engine = dump_engine or MySQLDumpEngine()

    def produce(
        self,
        target: BackupTarget,
        compression_engine: CompressionEngine,
        credential: Optional[DatabaseCredential] = None
    ) -> Tuple[str, int, int]:
        """
        Produce the archive for a target.

        Args:
            target: Item and archive to write
            compression_engine: Engine for the site's compression algorithm
            credential: Database login (database targets only)

        Returns:
            Tuple of (archive path, source size in bytes, archive size in bytes)

        Raises:
            SourceMissingError: If a folder/file source does not exist
            ArchiveError: If the tar archive cannot be written
            DumpError: If the database dump fails
            CompressionError: If compressing the dump fails
        """
        if target.kind == ItemKind.DATABASE:
            if credential is None:
                raise ValueError(f"No credentials given for database {target.source}")
            return self._produce_database(target, compression_engine, credential)
        return self._produce_tar(target, compression_engine)

    def _produce_tar(self, target: BackupTarget, compression_engine: CompressionEngine) -> Tuple[str, int, int]:
        source_size = self.source.measure(target)
        kind = target.kind.value.lower()
        self.log.info(
            f"Creating backup of {kind} \"{target.source}\" ({human_filesize(source_size)}) "
            f"to archive \"{target.archive_absolute}\"."
        )

        if os.path.exists(target.archive_absolute):
            self.log.warning(
                f"File {target.archive_absolute} already exists. "
                f"New content will be added at the end of the file."
            )

        source_path = self.source.resolve(target)
        add_to_archive(
            source_path,
            target.archive_absolute,
            compression_engine.algorithm,
            self.source.arcname(source_path)
        )

        archive_size = get_archive_size(target.archive_absolute)
        self.log.info(f"Backed up, file size: {human_filesize(archive_size)}.")
        return target.archive_absolute, source_size, archive_size

    def _produce_database(
        self,
        target: BackupTarget,
        compression_engine: CompressionEngine,
        credential: DatabaseCredential
    ) -> Tuple[str, int, int]:
        dump_path = dump_path_for(target, compression_engine.algorithm)
        self.log.info(f"Creating backup of database \"{credential.name}\" to archive \"{target.archive_absolute}\".")

        if os.path.exists(target.archive_absolute):
            self.log.warning(f"File {target.archive_absolute} already exists and will be replaced.")

        try:
            status = self.dump_engine.dump(credential, dump_path)
        except OSError:
            self._remove_broken_dump(dump_path)
            raise

        if status != 0:
            # The dump is incomplete, never compress it
            self._remove_broken_dump(dump_path)
            raise DumpError(credential.name, status)

        source_size = os.path.getsize(dump_path)
        status = compression_engine.compress(dump_path)
        archive_size = get_archive_size(compression_engine.compressed_path(dump_path))

        if status != 0:
            raise CompressionError(
                f"Couldn't compress dump for {credential.name}, Error {status}.",
                source_size=source_size,
                archive_size=archive_size
            )

        self.log.info(f"Backed up, file size: {human_filesize(archive_size)}.")
        return target.archive_absolute, source_size, archive_size

    def _remove_broken_dump(self, dump_path: str):
        if os.path.exists(dump_path):
            try:
                os.remove(dump_path)
                self.log.debug(f"Removed incomplete dump {dump_path}.")
            except OSError as e:
                self.log.warning(f"Could not remove incomplete dump {dump_path}: {e}")
