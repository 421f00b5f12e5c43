"""
Storage handlers for backup archives.

Supports:
- LocalStorage: The backup directory archives are written to
- FTPStorage: Remote FTP server archives are replicated to
"""

import os
import ftplib
from datetime import datetime
from typing import List, Dict, Any, Optional

from webhost_backup.config import FtpConfig

# Extensions of files that count against the backup quota
ARCHIVE_EXTENSIONS = ('.gz', '.bz2')


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


class DeleteError(StorageError):
    """Raised when an archive cannot be deleted from the backup directory."""
    pass


class FTPConnectionError(StorageError):
    """Raised when no connection to the FTP server can be established."""
    pass


class AuthError(StorageError):
    """Raised when the FTP login is rejected."""
    pass


class DirectoryError(StorageError):
    """Raised when the remote backup directory cannot be entered."""
    pass


class UploadError(StorageError):
    """Raised when a single archive upload fails."""
    pass


class LocalStorage:
    """
    Handler for the local backup directory.

    Only files directly inside the directory are considered; subdirectories
    are never scanned.
    """

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        Args:
            base_path: Backup directory
        """
        self.base_path = base_path

        # Create base directory if it doesn't exist
        try:
            os.makedirs(self.base_path, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create backup directory: {e}")

    def list_archives(self) -> List[Dict[str, Any]]:
        """
        List archive files in the backup directory.

        All .gz files come first, then all .bz2 files, each group in name
        order.

        Returns:
            List of dicts with 'path', 'name', 'created' and 'size' keys

        Raises:
            StorageError: If the directory cannot be listed
        """
        try:
            names = sorted(os.listdir(self.base_path))
        except OSError as e:
            raise StorageError(f"Failed to list backup directory {self.base_path}: {e}")

        archives = []
        for extension in ARCHIVE_EXTENSIONS:
            for name in names:
                if not name.endswith(extension):
                    continue
                path = os.path.join(self.base_path, name)
                # Archives can vanish between listdir and stat
                try:
                    if not os.path.isfile(path):
                        continue
                    created = os.path.getctime(path)
                    size = os.path.getsize(path)
                except OSError:
                    continue
                archives.append({
                    'path': path,
                    'name': name,
                    'created': created,
                    'size': size
                })

        return archives

    def total_size(self) -> int:
        """Total size of all archives in the backup directory."""
        return sum(archive['size'] for archive in self.list_archives())

    def delete(self, path: str):
        """
        Delete an archive.

        Args:
            path: Full path of the archive

        Raises:
            DeleteError: If the file is missing or cannot be removed
        """
        try:
            os.remove(path)
        except FileNotFoundError:
            raise DeleteError(f"File already gone: {path}")
        except PermissionError as e:
            raise DeleteError(f"Permission denied deleting {path}: {e}")
        except OSError as e:
            raise DeleteError(f"Failed to delete {path}: {e}")


class FTPStorage:
    """
    Handler for a session with the remote FTP server.

    Each method performs one protocol step and raises a StorageError subclass
    on failure. The caller decides which failures are fatal.
    """

    def __init__(self, config: FtpConfig):
        """
        Initialize FTP storage handler.

        Args:
            config: FTP host, login and remote directory
        """
        self.config = config
        self.ftp: Optional[ftplib.FTP] = None
        self.secure = False

    @property
    def is_connected(self) -> bool:
        return self.ftp is not None

    def connect_secure(self):
        """
        Open a TLS protected control connection (explicit FTPS).

        Raises:
            FTPConnectionError: If connecting or the TLS handshake fails
        """
        ftp = ftplib.FTP_TLS(timeout=self.config.timeout)
        try:
            ftp.connect(self.config.host, self.config.port)
            ftp.auth()
        except ftplib.all_errors as e:
            self._hard_close(ftp)
            raise FTPConnectionError(f"Secure connection to {self.config.host}:{self.config.port} failed: {e}")

        self.ftp = ftp
        self.secure = True

    def connect_plain(self):
        """
        Open an unencrypted control connection.

        Raises:
            FTPConnectionError: If connecting fails
        """
        ftp = ftplib.FTP(timeout=self.config.timeout)
        try:
            ftp.connect(self.config.host, self.config.port)
        except ftplib.all_errors as e:
            self._hard_close(ftp)
            raise FTPConnectionError(f"Connection to {self.config.host}:{self.config.port} failed: {e}")

        self.ftp = ftp
        self.secure = False

    def login(self):
        """
        Log in with the configured user. Secure sessions also protect the data channel.

        Raises:
            AuthError: If the login is rejected
        """
        try:
            self.ftp.login(self.config.user, self.config.password)
            if self.secure:
                self.ftp.prot_p()
        except ftplib.all_errors as e:
            raise AuthError(f"Login as {self.config.user} failed: {e}")

    def enter_passive_mode(self):
        """
        Switch to passive mode.

        Raises:
            StorageError: If the switch fails
        """
        try:
            self.ftp.set_pasv(True)
        except ftplib.all_errors as e:
            raise StorageError(f"Passive mode failed: {e}")

    def change_directory(self, remote_dir: str) -> str:
        """
        Enter the remote backup directory.

        Returns:
            Working directory reported by the server

        Raises:
            DirectoryError: If the directory cannot be entered
        """
        try:
            self.ftp.cwd(remote_dir)
            return self.ftp.pwd()
        except ftplib.all_errors as e:
            raise DirectoryError(f"Could not switch to FTP path {remote_dir}: {e}")

    def remote_size(self, remote_name: str) -> Optional[int]:
        """
        Get the size of a remote file.

        Returns:
            Size in bytes, None if the file does not exist (or SIZE is unsupported)
        """
        try:
            self.ftp.voidcmd('TYPE I')
            return self.ftp.size(remote_name)
        except ftplib.all_errors:
            return None

    def upload(self, local_path: str, remote_name: str):
        """
        Upload a file into the current remote directory.

        Args:
            local_path: Path to local archive file
            remote_name: Filename on the server

        Raises:
            UploadError: If the upload fails
        """
        try:
            with open(local_path, 'rb') as f:
                self.ftp.storbinary(f'STOR {remote_name}', f)
        except ftplib.all_errors as e:
            raise UploadError(f"Upload of {local_path} as {remote_name} failed: {e}")

    def close(self):
        """Close the session politely, falling back to dropping the socket."""
        if self.ftp is None:
            return
        try:
            self.ftp.quit()
        except ftplib.all_errors:
            self._hard_close(self.ftp)
        self.ftp = None
        self.secure = False

    @staticmethod
    def _hard_close(ftp: ftplib.FTP):
        try:
            ftp.close()
        except OSError:
            pass


def backup_directory_usage(base_path: str) -> Dict[str, Any]:
    """Archive count and size of a backup directory, for reporting."""
    storage = LocalStorage(base_path)
    archives = storage.list_archives()
    return {
        'archives': len(archives),
        'size': sum(a['size'] for a in archives),
        'checked_at': datetime.now().isoformat()
    }
