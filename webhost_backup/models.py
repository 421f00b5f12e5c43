from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class ItemKind(Enum):
    """Kind of item a backup result describes"""
    FOLDER = 'Folder'
    FILE = 'File'
    DATABASE = 'Database'


@dataclass(frozen=True)
class DatabaseCredential:
    """Database name and login used for dumping"""
    name: str
    user: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class Site:
    """A set of folders, files and databases archived together"""
    description: str
    backup_prefix: str
    folders: Tuple[str, ...] = ()
    files: Tuple[str, ...] = ()
    databases: Tuple[DatabaseCredential, ...] = ()

    def __repr__(self):
        return (
            f'<Site {self.backup_prefix} folders={len(self.folders)} '
            f'files={len(self.files)} databases={len(self.databases)}>'
        )


@dataclass(frozen=True)
class BackupTarget:
    """Pairing of one source with the archive it is written to"""
    kind: ItemKind
    source: str  # relative folder/file path or database name
    source_absolute: Optional[str]
    archive_filename: str
    archive_absolute: str


@dataclass
class BackupResult:
    """Outcome of backing up a single item"""
    site_description: str
    item_kind: ItemKind
    source_path: str
    target_path: str
    target_filename: str
    target_absolute: str
    source_size_bytes: int = 0
    target_size_bytes: int = 0
    duration_seconds: int = 0
    error: Optional[str] = None
    upload_duration_seconds: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self):
        return {
            'site': self.site_description,
            'type': self.item_kind.value,
            'source': self.source_path,
            'target': self.target_path,
            'target_filename': self.target_filename,
            'source_size': self.source_size_bytes,
            'target_size': self.target_size_bytes,
            'duration': self.duration_seconds,
            'duration_ftp': self.upload_duration_seconds,
            'error': self.error
        }

    def __repr__(self):
        return f'<BackupResult {self.item_kind.value} {self.source_path} error={self.error is not None}>'


@dataclass
class ResultLedger:
    """
    Results of one backup run.

    Results are appended in processing order and never removed. The error
    flag is sticky: once set it stays set for the rest of the run.
    """
    run_start_time: datetime = field(default_factory=datetime.now)
    results: List[BackupResult] = field(default_factory=list)
    has_errors: bool = False
    deleted_file_count: int = 0

    def append(self, result: BackupResult):
        self.results.append(result)
        if result.error is not None:
            self.mark_error()

    def mark_error(self):
        self.has_errors = True

    @property
    def total_source_size(self) -> int:
        return sum(r.source_size_bytes for r in self.results)

    @property
    def total_target_size(self) -> int:
        return sum(r.target_size_bytes for r in self.results)

    @property
    def total_duration(self) -> int:
        return sum(r.duration_seconds for r in self.results)

    @property
    def total_upload_duration(self) -> int:
        return sum(r.upload_duration_seconds or 0 for r in self.results)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.error is not None)

    def to_dict(self):
        return {
            'run_start_time': self.run_start_time.isoformat(),
            'has_errors': self.has_errors,
            'deleted_files': self.deleted_file_count,
            'backups': [r.to_dict() for r in self.results],
            'totals': {
                'source_size': self.total_source_size,
                'target_size': self.total_target_size,
                'duration': self.total_duration,
                'duration_ftp': self.total_upload_duration,
                'errors': self.error_count
            }
        }
