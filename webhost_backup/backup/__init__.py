"""
Backup module for Webhost Backup.

This module handles the core backup functionality including:
- Archive production (folders, files and database dumps)
- Compression
- Storage (backup directory and FTP)
- Execution orchestration
- Quota based retention
"""

from .executor import BackupExecutor, execute_backup_run
from .producer import ArchiveProducer
from .compression import add_to_archive, get_compression_engine
from .storage import LocalStorage, FTPStorage
from .retention import RetentionManager
from .replication import FTPReplicator
from .runlog import RunLog

__all__ = [
    'BackupExecutor',
    'execute_backup_run',
    'ArchiveProducer',
    'add_to_archive',
    'get_compression_engine',
    'LocalStorage',
    'FTPStorage',
    'RetentionManager',
    'FTPReplicator',
    'RunLog'
]
