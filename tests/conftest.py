"""
Shared pytest fixtures for Webhost Backup tests.

This module provides fixtures for:
- Flask app and test client
- A webspace tree with site folders and files
- Typed backup/FTP/locale configuration
- Fake dump and compression engines (no mysqldump/gzip binaries needed)
- Run log and sample sites
"""

import gzip
import json
import os
import shutil

import pytest

from webhost_backup import create_app
from webhost_backup.backup.compression import CompressionEngine
from webhost_backup.backup.dump import DumpEngine
from webhost_backup.backup.runlog import RunLog
from webhost_backup.config import BackupConfig, FtpConfig, LocaleConfig
from webhost_backup.models import DatabaseCredential, Site


class FakeDumpEngine(DumpEngine):
    """
    Dump engine that writes canned SQL instead of running mysqldump.

    A non-zero exit status still leaves a partial dump behind, like a
    mysqldump that dies halfway.
    """

    def __init__(self, exit_status=0, content=b"-- dump\nCREATE TABLE t (id INT);\n"):
        self.exit_status = exit_status
        self.content = content
        self.calls = []

    def dump(self, credential, output_path):
        self.calls.append((credential.name, output_path))
        with open(output_path, 'wb') as f:
            f.write(self.content if self.exit_status == 0 else self.content[:5])
        return self.exit_status


class FakeCompressionEngine(CompressionEngine):
    """
    Compression engine that gzips in-process instead of calling gzip/bzip2.
    """

    def __init__(self, algorithm='gz', exit_status=0):
        self.algorithm = algorithm
        self.exit_status = exit_status
        self.calls = []

    def compress(self, path):
        self.calls.append(path)
        if self.exit_status != 0:
            return self.exit_status
        with open(path, 'rb') as src, gzip.open(self.compressed_path(path), 'wb') as dst:
            shutil.copyfileobj(src, dst)
        os.remove(path)
        return 0


@pytest.fixture
def fake_dump_engine():
    """Successful fake dump engine."""
    return FakeDumpEngine()


@pytest.fixture
def make_dump_engine():
    """Factory for fake dump engines: make_dump_engine(exit_status=2)."""
    return FakeDumpEngine


@pytest.fixture
def make_compression_engine():
    """Factory for fake compression engines: make_compression_engine('gz', exit_status=1)."""
    return FakeCompressionEngine


@pytest.fixture
def webspace(tmp_path):
    """
    Create a webspace root with one site.

    Creates:
    - example.com/www/index.php
    - example.com/www/wp/wp-config.php
    - example.com/important-file.ext
    """
    root = tmp_path / 'webspace'
    www = root / 'example.com' / 'www'
    (www / 'wp').mkdir(parents=True)
    (www / 'index.php').write_text('<?php echo "hello"; ?>')
    (www / 'wp' / 'wp-config.php').write_text('<?php define("DB_NAME", "d0123456"); ?>')
    (root / 'example.com' / 'important-file.ext').write_text('important content')
    return root


@pytest.fixture
def backup_dir(tmp_path):
    """Empty backup directory."""
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture
def backup_config(webspace, backup_dir):
    """Backup configuration pointing at the test webspace."""
    return BackupConfig(
        source_root=str(webspace),
        target_directory=str(backup_dir),
        quota_bytes=100 * 1024 ** 2,
        compression_algorithm='gz'
    )


@pytest.fixture
def ftp_config():
    """FTP configuration for a server that does not exist."""
    return FtpConfig(
        host='ftp.example.com',
        port=21,
        user='backup',
        password='ftp-secret',
        remote_dir='/backups',
        unsecure_fallback=False,
        enabled=True,
        timeout=5
    )


@pytest.fixture
def locale_config():
    return LocaleConfig()


@pytest.fixture
def run_log():
    return RunLog()


@pytest.fixture
def sample_site():
    """Site with one folder, one file and one database."""
    return Site(
        description='example.com wordpress',
        backup_prefix='example_com',
        folders=('example.com/www',),
        files=('example.com/important-file.ext',),
        databases=(DatabaseCredential('d0123456', 'd0123456', 'db-secret'),)
    )


@pytest.fixture
def sites_file(tmp_path):
    """Sites JSON file with one site without databases."""
    path = tmp_path / 'sites.json'
    path.write_text(json.dumps([
        {
            'description': 'example.com wordpress',
            'backup_prefix': 'example_com',
            'folders': ['example.com/www'],
            'files': ['example.com/important-file.ext'],
            'databases': []
        }
    ]))
    return path


@pytest.fixture(scope='function')
def app(tmp_path, webspace, backup_dir, sites_file):
    """
    Create Flask app with test configuration.

    All paths point into the test's temporary directory.
    """
    app = create_app('testing', overrides={
        'SOURCE_ROOT': str(webspace),
        'BACKUP_TARGET_DIR': str(backup_dir),
        'SITES_FILE': str(sites_file),
        'LOG_DIR': str(tmp_path / 'logs'),
        'BACKUP_QUOTA': 100 * 1024 ** 2,
    })

    yield app


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()
