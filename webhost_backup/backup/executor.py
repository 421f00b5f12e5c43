"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Back up every site (folders, then files, then databases)
2. Enforce the quota on the backup directory
3. Upload the produced archives to the FTP server (if configured)

Each step is its own failure domain. A failed item or a misconfigured site
never stops the others, and a failed FTP session leaves the local backups
in place.
"""

import os
import time
from datetime import datetime
from typing import Iterable, Optional, Tuple

from webhost_backup.config import BackupConfig, ConfigurationError, FtpConfig, LocaleConfig
from webhost_backup.models import BackupResult, BackupTarget, DatabaseCredential, ResultLedger, Site
from webhost_backup.utils.sizes import elapsed_seconds, get_directory_size, human_filesize
from .compression import ArchiveError, CompressionEngine, CompressionError, get_compression_engine
from .dump import DumpEngine, DumpError
from .producer import ArchiveProducer
from .replication import FTPReplicator
from .retention import RetentionManager
from .runlog import RunLog
from .sources import LocalSource, SourceMissingError

# Failures that only affect the item being backed up
ITEM_ERRORS = (SourceMissingError, ArchiveError, DumpError, CompressionError, OSError)


class BackupExecutor:
    """
    Backs up a list of sites into the backup directory.
    """

    def __init__(
        self,
        backup_config: BackupConfig,
        locale_config: Optional[LocaleConfig] = None,
        log: Optional[RunLog] = None,
        dump_engine: Optional[DumpEngine] = None,
        compression_engine_factory=get_compression_engine
    ):
        """
        Initialize backup executor.

        Args:
            backup_config: Source root, backup directory and compression settings
            locale_config: Timestamp patterns
            log: Run log to record progress in
            dump_engine: Engine used for database dumps
            compression_engine_factory: Returns the engine for an algorithm name
        """
        self.config = backup_config
        self.locale = locale_config or LocaleConfig()
        self.log = log or RunLog(self.locale.timestamp_format)
        self.source = LocalSource(backup_config.source_root, backup_config.target_directory)
        self.producer = ArchiveProducer(self.source, self.log, dump_engine)
        self.compression_engine_factory = compression_engine_factory

    def run_all(self, sites: Iterable[Site], ledger: Optional[ResultLedger] = None) -> ResultLedger:
        """
        Back up all sites in order.

        Args:
            sites: Site declarations
            ledger: Ledger to append to (a new one is created if omitted)

        Returns:
            Ledger with one result per backed up item
        """
        ledger = ledger if ledger is not None else ResultLedger()
        for site in sites:
            self.backup_site(site, ledger)
        return ledger

    def backup_site(self, site: Site, ledger: ResultLedger):
        """
        Back up the folders, files and databases of one site.

        An unsupported compression algorithm skips the whole site before any
        item is attempted.
        """
        self.log.info(f"---Creating backup of site {site.description}---")

        try:
            engine = self.compression_engine_factory(self.config.compression_algorithm)
        except ConfigurationError as e:
            self.log.error(str(e))
            ledger.mark_error()
            return

        timestamp = datetime.now().strftime(self.locale.filename_timestamp_format)
        algorithm = engine.algorithm

        for folder in site.folders:
            target = self.source.folder_target(site, folder, timestamp, algorithm)
            ledger.append(self._backup_item(site, target, engine))

        for file in site.files:
            target = self.source.file_target(site, file, timestamp, algorithm)
            ledger.append(self._backup_item(site, target, engine))

        for credential in site.databases:
            target = self.source.database_target(site, credential, timestamp, algorithm)
            ledger.append(self._backup_item(site, target, engine, credential))

        self.log.info(f"---Backup of site {site.description} finished---")

    def _backup_item(
        self,
        site: Site,
        target: BackupTarget,
        engine: CompressionEngine,
        credential: Optional[DatabaseCredential] = None
    ) -> BackupResult:
        start_time = time.monotonic()
        source_size = 0
        archive_size = 0
        error = None

        try:
            _, source_size, archive_size = self.producer.produce(target, engine, credential)
        except CompressionError as e:
            source_size = e.source_size
            archive_size = e.archive_size
            error = str(e)
        except ITEM_ERRORS as e:
            error = str(e)

        if error is not None:
            self.log.error(error)

        if target.source_absolute is not None:
            source_display = self.source.display_path(target.source_absolute)
        else:
            source_display = target.source

        return BackupResult(
            site_description=site.description,
            item_kind=target.kind,
            source_path=source_display,
            target_path=self.source.display_path(target.archive_absolute),
            target_filename=target.archive_filename,
            target_absolute=target.archive_absolute,
            source_size_bytes=source_size,
            target_size_bytes=archive_size,
            duration_seconds=elapsed_seconds(start_time),
            error=error
        )


def execute_backup_run(
    backup_config: BackupConfig,
    ftp_config: FtpConfig,
    locale_config: LocaleConfig,
    sites: Iterable[Site],
    log: Optional[RunLog] = None,
    dump_engine: Optional[DumpEngine] = None
) -> Tuple[ResultLedger, RunLog]:
    """
    Run the backup, retention and replication stages once.

    Retention only starts after every site has been backed up, and
    replication only after retention.

    Returns:
        Tuple of (ledger, run log)
    """
    log = log or RunLog(locale_config.timestamp_format)
    ledger = ResultLedger()
    start_time = time.monotonic()

    log.debug(f"Webspace root directory (absolute): {backup_config.source_root}")
    log.debug(f"Backup directory (absolute): {backup_config.target_directory}")
    os.makedirs(backup_config.target_directory, exist_ok=True)

    # Stage 1: backups
    if backup_config.enabled:
        executor = BackupExecutor(backup_config, locale_config, log, dump_engine)
        executor.run_all(sites, ledger)
    else:
        log.info("Backups are disabled, skipping")

    # Stage 2: quota
    if backup_config.cleanup:
        manager = RetentionManager(log, locale_config.date_format)
        retention = manager.enforce(backup_config.target_directory, backup_config.quota_bytes)
        ledger.deleted_file_count = retention.deleted_count
        if retention.aborted:
            ledger.mark_error()
    else:
        log.info("Cleanup is disabled, old backups are never removed")

    # Stage 3: remote copy
    if ftp_config.enabled:
        FTPReplicator(ftp_config, log).replicate(ledger)

    webspace_size = get_directory_size(backup_config.source_root)
    backup_directory = os.path.abspath(backup_config.target_directory)
    if backup_directory.startswith(os.path.abspath(backup_config.source_root) + os.sep):
        webspace_size -= get_directory_size(backup_directory)
    log.info(f"Size of all web directories (excluding backup): {human_filesize(webspace_size)}")

    log.info(f"Total local time was {elapsed_seconds(start_time)} seconds.")
    log.info("-----Backup run finished-----")

    return ledger, log
