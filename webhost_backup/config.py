import os
import re
import json
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised when configuration values or site declarations are invalid."""
    pass


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('true', 'yes', '1')


class Config:
    """Base configuration"""

    # Webspace and backup directory
    SOURCE_ROOT = os.environ.get('SOURCE_ROOT') or '/data/webspace'
    BACKUP_TARGET_DIR = os.environ.get('BACKUP_TARGET_DIR') or '/data/backups'
    SITES_FILE = os.environ.get('SITES_FILE') or '/data/sites.json'

    # Backup
    BACKUP_ENABLED = _env_flag('BACKUP_ENABLED', 'true')
    BACKUP_CLEANUP = _env_flag('BACKUP_CLEANUP', 'true')
    BACKUP_QUOTA = int(os.environ.get('BACKUP_QUOTA') or 100 * 1024 ** 3)
    COMPRESSION_ALGORITHM = os.environ.get('COMPRESSION_ALGORITHM') or 'gz'  # gz = fast, bz2 = small

    # FTP replication
    FTP_ENABLED = _env_flag('FTP_ENABLED', 'false')
    FTP_UNSECURE_FALLBACK = _env_flag('FTP_UNSECURE_FALLBACK', 'true')  # files can be sent unencrypted
    FTP_HOST = os.environ.get('FTP_HOST') or 'ftp.example.com'
    FTP_PORT = int(os.environ.get('FTP_PORT') or 21)
    FTP_USER = os.environ.get('FTP_USER') or ''
    FTP_PASSWORD = os.environ.get('FTP_PASSWORD') or ''
    FTP_DIR = os.environ.get('FTP_DIR') or '/backups'  # must exist on the server
    FTP_TIMEOUT = int(os.environ.get('FTP_TIMEOUT') or 30)

    # Locale
    TIMESTAMP_FORMAT = os.environ.get('TIMESTAMP_FORMAT') or '%Y-%m-%d_%H-%M-%S'
    DATE_FORMAT = os.environ.get('DATE_FORMAT') or '%Y-%m-%d'
    FILENAME_TIMESTAMP_FORMAT = os.environ.get('FILENAME_TIMESTAMP_FORMAT') or '%Y-%m-%d_%H-%M-%S'

    # Trigger endpoint
    RUN_TOKEN = os.environ.get('RUN_TOKEN')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SOURCE_ROOT = os.path.join(DATA_DIR, 'webspace')
    BACKUP_TARGET_DIR = os.path.join(DATA_DIR, 'backups')
    SITES_FILE = os.path.join(DATA_DIR, 'sites.json')


class TestingConfig(DevelopmentConfig):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    FTP_ENABLED = False
    RUN_TOKEN = None


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


@dataclass(frozen=True)
class BackupConfig:
    source_root: str
    target_directory: str
    quota_bytes: int
    compression_algorithm: str = 'gz'
    enabled: bool = True
    cleanup: bool = True


@dataclass(frozen=True)
class FtpConfig:
    host: str
    port: int = 21
    user: str = ''
    password: str = ''
    remote_dir: str = '/'
    unsecure_fallback: bool = True
    enabled: bool = False
    timeout: int = 30

    def __repr__(self):
        return (
            f'FtpConfig(host={self.host!r}, port={self.port}, user={self.user!r}, '
            f'remote_dir={self.remote_dir!r}, unsecure_fallback={self.unsecure_fallback}, '
            f'enabled={self.enabled})'
        )


@dataclass(frozen=True)
class LocaleConfig:
    timestamp_format: str = '%Y-%m-%d_%H-%M-%S'
    date_format: str = '%Y-%m-%d'
    filename_timestamp_format: str = '%Y-%m-%d_%H-%M-%S'


def backup_config_from(mapping) -> BackupConfig:
    """Build a BackupConfig from a Flask config mapping."""
    return BackupConfig(
        source_root=os.path.abspath(mapping['SOURCE_ROOT']),
        target_directory=os.path.abspath(mapping['BACKUP_TARGET_DIR']),
        quota_bytes=int(mapping['BACKUP_QUOTA']),
        compression_algorithm=mapping['COMPRESSION_ALGORITHM'],
        enabled=bool(mapping.get('BACKUP_ENABLED', True)),
        cleanup=bool(mapping.get('BACKUP_CLEANUP', True))
    )


def ftp_config_from(mapping) -> FtpConfig:
    """Build an FtpConfig from a Flask config mapping."""
    return FtpConfig(
        host=mapping['FTP_HOST'],
        port=int(mapping.get('FTP_PORT', 21)),
        user=mapping.get('FTP_USER', ''),
        password=mapping.get('FTP_PASSWORD', ''),
        remote_dir=mapping.get('FTP_DIR', '/'),
        unsecure_fallback=bool(mapping.get('FTP_UNSECURE_FALLBACK', True)),
        enabled=bool(mapping.get('FTP_ENABLED', False)),
        timeout=int(mapping.get('FTP_TIMEOUT', 30))
    )


def locale_config_from(mapping) -> LocaleConfig:
    """Build a LocaleConfig from a Flask config mapping."""
    return LocaleConfig(
        timestamp_format=mapping.get('TIMESTAMP_FORMAT', LocaleConfig.timestamp_format),
        date_format=mapping.get('DATE_FORMAT', LocaleConfig.date_format),
        filename_timestamp_format=mapping.get(
            'FILENAME_TIMESTAMP_FORMAT', LocaleConfig.filename_timestamp_format
        )
    )


_PREFIX_PATTERN = re.compile(r"[A-Za-z0-9_]+")
# Used in the dump filename and as a mysqldump argument: no path separators, no leading dash
_DATABASE_PATTERN = re.compile(r"[A-Za-z0-9_$][A-Za-z0-9_$-]*")


def parse_sites(declarations):
    """
    Convert raw site declarations into Site objects.

    Args:
        declarations: List of dicts with keys description, backup_prefix,
            folders, files and databases (each database a dict with
            db, user and pass)

    Returns:
        List of Site instances in declaration order

    Raises:
        ConfigurationError: If a declaration is malformed
    """
    from webhost_backup.models import Site, DatabaseCredential

    if not isinstance(declarations, list):
        raise ConfigurationError("Site declarations must be a list")

    sites = []
    for index, raw in enumerate(declarations):
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Site #{index} is not an object")

        description = raw.get('description')
        prefix = raw.get('backup_prefix')
        if not description:
            raise ConfigurationError(f"Site #{index} has no description")
        if not isinstance(prefix, str) or not _PREFIX_PATTERN.fullmatch(prefix):
            raise ConfigurationError(
                f"Site '{description}' has an invalid backup_prefix {prefix!r}. "
                f"Use only a-z, A-Z, 0-9 and underscores."
            )

        databases = []
        for db_index, db in enumerate(raw.get('databases', [])):
            try:
                databases.append(DatabaseCredential(
                    name=db['db'],
                    user=db.get('user', db['db']),
                    password=db.get('pass', '')
                ))
            except (KeyError, TypeError, AttributeError):
                raise ConfigurationError(
                    f"Database #{db_index} of site '{description}' needs at least a 'db' name"
                )
            name = databases[-1].name
            if not isinstance(name, str) or not _DATABASE_PATTERN.fullmatch(name):
                raise ConfigurationError(
                    f"Database #{db_index} of site '{description}' has an invalid name {name!r}. "
                    f"Use only a-z, A-Z, 0-9, underscores, dashes and dollar signs."
                )

        sites.append(Site(
            description=description,
            backup_prefix=prefix,
            folders=tuple(raw.get('folders', [])),
            files=tuple(raw.get('files', [])),
            databases=tuple(databases)
        ))

    return sites


def load_sites(path):
    """
    Load site declarations from a JSON file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or malformed
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            declarations = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Sites file not found: {path}")
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Failed to read sites file {path}: {e}")

    return parse_sites(declarations)
