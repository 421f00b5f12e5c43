"""
Unit tests for the archive producer (webhost_backup/backup/producer.py).
"""

import gzip
import os
import tarfile

import pytest

from webhost_backup.backup.compression import CompressionError
from webhost_backup.backup.dump import DumpError
from webhost_backup.backup.producer import ArchiveProducer
from webhost_backup.backup.sources import LocalSource, SourceMissingError, dump_path_for
from webhost_backup.models import DatabaseCredential, Site

TIMESTAMP = '2024-01-15_12-00-00'


@pytest.fixture
def source(webspace, backup_dir):
    return LocalSource(str(webspace), str(backup_dir))


@pytest.fixture
def producer(source, run_log, fake_dump_engine):
    return ArchiveProducer(source, run_log, fake_dump_engine)


class TestProduceFolderAndFile:
    """Test tar archives for folders and files."""

    def test_produce_folder(self, producer, source, sample_site, make_compression_engine, webspace):
        target = source.folder_target(sample_site, 'example.com/www', TIMESTAMP, 'gz')

        path, source_size, archive_size = producer.produce(target, make_compression_engine('gz'))

        assert path == target.archive_absolute
        assert source_size == sum(
            os.path.getsize(os.path.join(root, f))
            for root, _, files in os.walk(webspace / 'example.com' / 'www') for f in files
        )
        assert archive_size == os.path.getsize(path)
        with tarfile.open(path, 'r:gz') as tar:
            assert 'example.com/www/index.php' in tar.getnames()

    def test_produce_file(self, producer, source, sample_site, make_compression_engine):
        target = source.file_target(sample_site, 'example.com/important-file.ext', TIMESTAMP, 'bz2')

        path, source_size, archive_size = producer.produce(target, make_compression_engine('bz2'))

        assert source_size == len('important content')
        with tarfile.open(path, 'r:bz2') as tar:
            assert tar.getnames() == ['example.com/important-file.ext']

    def test_missing_folder(self, producer, source, sample_site, make_compression_engine, backup_dir):
        target = source.folder_target(sample_site, 'example.com/gone', TIMESTAMP, 'gz')

        with pytest.raises(SourceMissingError):
            producer.produce(target, make_compression_engine('gz'))

        assert os.listdir(backup_dir) == []

    def test_existing_archive_is_appended(self, producer, source, sample_site, make_compression_engine, run_log):
        target = source.file_target(sample_site, 'example.com/important-file.ext', TIMESTAMP, 'gz')
        engine = make_compression_engine('gz')

        _, _, first_size = producer.produce(target, engine)
        _, _, second_size = producer.produce(target, engine)

        assert second_size > first_size
        with tarfile.open(target.archive_absolute, 'r:gz') as tar:
            assert len(tar.getmembers()) == 2
        assert any(
            e.level == 'warning' and 'already exists' in e.text for e in run_log.entries
        )

    def test_source_is_never_deleted(self, producer, source, sample_site, make_compression_engine, webspace):
        target = source.folder_target(sample_site, 'example.com/www', TIMESTAMP, 'gz')
        producer.produce(target, make_compression_engine('gz'))

        assert (webspace / 'example.com' / 'www' / 'index.php').exists()


class TestProduceDatabase:
    """Test database dump, compression and cleanup."""

    def test_produce_database(self, producer, source, sample_site, make_compression_engine, fake_dump_engine):
        credential = sample_site.databases[0]
        target = source.database_target(sample_site, credential, TIMESTAMP, 'gz')

        path, source_size, archive_size = producer.produce(target, make_compression_engine('gz'), credential)

        assert path == target.archive_absolute
        assert source_size == len(fake_dump_engine.content)
        assert archive_size == os.path.getsize(path)
        assert not os.path.exists(dump_path_for(target, 'gz'))
        with gzip.open(path, 'rb') as f:
            assert f.read() == fake_dump_engine.content

    def test_dump_failure(self, source, sample_site, run_log, make_dump_engine, make_compression_engine, backup_dir):
        """Failed dump: partial file removed, nothing compressed."""
        producer = ArchiveProducer(source, run_log, make_dump_engine(exit_status=2))
        compression = make_compression_engine('gz')
        credential = sample_site.databases[0]
        target = source.database_target(sample_site, credential, TIMESTAMP, 'gz')

        with pytest.raises(DumpError) as excinfo:
            producer.produce(target, compression, credential)

        assert excinfo.value.exit_status == 2
        assert compression.calls == []
        assert os.listdir(backup_dir) == []

    def test_compression_failure_keeps_dump_size(self, producer, source, sample_site, make_compression_engine,
                                                 fake_dump_engine):
        credential = sample_site.databases[0]
        target = source.database_target(sample_site, credential, TIMESTAMP, 'gz')

        with pytest.raises(CompressionError) as excinfo:
            producer.produce(target, make_compression_engine('gz', exit_status=1), credential)

        assert excinfo.value.source_size == len(fake_dump_engine.content)
        assert excinfo.value.archive_size == 0
        assert "Couldn't compress dump for d0123456" in str(excinfo.value)
        # The uncompressed dump is kept
        assert os.path.exists(dump_path_for(target, 'gz'))

    def test_database_requires_credential(self, producer, source, sample_site, make_compression_engine):
        target = source.database_target(sample_site, sample_site.databases[0], TIMESTAMP, 'gz')

        with pytest.raises(ValueError):
            producer.produce(target, make_compression_engine('gz'))

    def test_password_never_logged(self, producer, source, run_log, make_compression_engine):
        site = Site('s', 's', databases=(DatabaseCredential('db1', 'u1', 'top-secret'),))
        credential = site.databases[0]
        target = source.database_target(site, credential, TIMESTAMP, 'gz')

        producer.produce(target, make_compression_engine('gz'), credential)

        assert all('top-secret' not in line for line in run_log.lines())
