"""
Remote replication of backup archives to an FTP server.

Connection sequence:
1. Secure connection (FTPS), falling back to plain FTP if allowed
2. Login
3. Passive mode (best effort)
4. Change into the remote backup directory
5. Upload every archive of the ledger under its own filename

Any failure in steps 1, 2 and 4 aborts the replication. A failed upload
is recorded and the next archive is tried. Nothing is retried.
"""

import os
import time
from typing import Optional

from webhost_backup.config import FtpConfig
from webhost_backup.models import ResultLedger
from webhost_backup.utils.sizes import elapsed_seconds
from .runlog import RunLog
from .storage import FTPStorage, StorageError, FTPConnectionError, AuthError, DirectoryError, UploadError


class FTPReplicator:
    """
    Uploads the archives of a backup run to the remote FTP server.
    """

    def __init__(self, config: FtpConfig, log: Optional[RunLog] = None):
        """
        Initialize FTP replicator.

        Args:
            config: FTP server settings
            log: Run log to record progress in
        """
        self.config = config
        self.log = log or RunLog()
        self.storage = FTPStorage(config)

    def replicate(self, ledger: ResultLedger) -> int:
        """
        Upload all archives listed in the ledger.

        Updates upload_duration_seconds of each successfully uploaded result
        in place and sets the ledger's error flag on any failure.

        Args:
            ledger: Results of the backup stage

        Returns:
            Number of uploaded archives
        """
        self.log.info("---Uploading backups to remote FTP server---")

        try:
            self._open_session()
        except StorageError as e:
            self.log.error(str(e))
            self.log.error("Error in FTP initialization, not backing up to FTP (!).")
            ledger.mark_error()
            self.storage.close()
            return 0

        try:
            return self._upload_all(ledger)
        finally:
            self.storage.close()
            self.log.debug("FTP connection closed.")

    def _open_session(self):
        """
        Connect, log in and enter the remote directory.

        Raises:
            FTPConnectionError: If no connection could be established
            AuthError: If the login is rejected
            DirectoryError: If the remote directory cannot be entered
        """
        self.log.info("Connecting to FTP server.")

        try:
            self.storage.connect_secure()
        except FTPConnectionError as e:
            self.log.warning(f"Could not connect safely (using SSL): {e}")

            if not self.config.unsecure_fallback:
                raise FTPConnectionError("Could not connect to FTP server securely.")

            self.log.info("Trying fallback with unsecure FTP.")
            try:
                self.storage.connect_plain()
            except FTPConnectionError as e:
                raise FTPConnectionError(f"Could not connect to FTP server with unsecure FTP either: {e}")

        self.log.info("FTP connected successfully.")

        try:
            self.storage.login()
        except AuthError as e:
            raise AuthError(f"Could not login to FTP server, check user and password. {e}")

        self.log.info("FTP logged in.")

        try:
            self.storage.enter_passive_mode()
            self.log.info("Successfully switched to passive mode.")
        except StorageError:
            self.log.warning(
                "Can't switch to passive mode. Trying anyways. "
                "Can be problematic when behind a firewall."
            )

        try:
            remote_dir = self.storage.change_directory(self.config.remote_dir)
        except DirectoryError as e:
            raise DirectoryError(f"{e}. Please check if it exists.")

        self.log.info(f"FTP now ready in directory {remote_dir}. Backups will be saved here.")

    def _upload_all(self, ledger: ResultLedger) -> int:
        uploaded = 0

        for result in ledger.results:
            # Folders (and files) of a site share one archive, so an errored
            # item can point at an archive produced by a sibling
            if result.error is not None:
                self.log.warning(
                    f"Skipping upload of \"{result.target_filename}\" for {result.source_path}, "
                    f"its backup failed."
                )
                continue

            if not os.path.isfile(result.target_absolute):
                self.log.warning(
                    f"Skipping upload of \"{result.target_filename}\", "
                    f"no archive was produced for {result.source_path}."
                )
                continue

            start_time = time.monotonic()
            self.log.info(
                f"Uploading \"{result.target_absolute}\" to FTP server as \"{result.target_filename}\"."
            )

            if self.storage.remote_size(result.target_filename) is not None:
                self.log.warning(f"File {result.target_filename} already exists and will be overwritten.")

            try:
                self.storage.upload(result.target_absolute, result.target_filename)
            except UploadError as e:
                self.log.error(f"Error uploading file. {e}")
                ledger.mark_error()
                continue

            duration = elapsed_seconds(start_time)
            result.upload_duration_seconds = duration
            uploaded += 1
            self.log.info(f"File uploaded successfully in {duration}s.")

        return uploaded
