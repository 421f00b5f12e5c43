"""
Unit tests for the run routes (webhost_backup/routes/run_routes.py).
"""

import json
import os
from unittest.mock import patch

import pytest

from webhost_backup import create_app
from webhost_backup.routes import run_routes


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy'}


class TestTriggerRun:
    """Test POST /api/run/."""

    def test_run_creates_archives(self, client, backup_dir):
        response = client.post('/api/run/')

        assert response.status_code == 200
        data = response.get_json()
        assert data['has_errors'] is False
        assert [b['type'] for b in data['ledger']['backups']] == ['Folder', 'File']
        assert data['usage']['archives'] == 2
        assert data['logs'][-1]['text'] == "-----Backup run finished-----"
        assert len(os.listdir(backup_dir)) == 2

    def test_run_reports_item_errors(self, app, client, tmp_path):
        sites = tmp_path / 'broken_sites.json'
        sites.write_text(json.dumps([
            {'description': 'broken', 'backup_prefix': 'broken', 'folders': ['nowhere']}
        ]))
        app.config['SITES_FILE'] = str(sites)

        response = client.post('/api/run/')

        assert response.status_code == 200
        data = response.get_json()
        assert data['has_errors'] is True
        assert "doesn't exist" in data['ledger']['backups'][0]['error']

    def test_invalid_sites_file(self, app, client, tmp_path):
        sites = tmp_path / 'invalid_sites.json'
        sites.write_text(json.dumps([{'description': 'bad', 'backup_prefix': 'bad-prefix'}]))
        app.config['SITES_FILE'] = str(sites)

        response = client.post('/api/run/')

        assert response.status_code == 400
        assert 'backup_prefix' in response.get_json()['error']

    def test_missing_sites_file(self, app, client, tmp_path):
        app.config['SITES_FILE'] = str(tmp_path / 'missing.json')

        response = client.post('/api/run/')

        assert response.status_code == 400

    def test_run_in_progress(self, client, backup_dir):
        """A second run is refused while one holds the run lock."""
        assert run_routes._run_lock.acquire(blocking=False)
        try:
            response = client.post('/api/run/')
        finally:
            run_routes._run_lock.release()

        assert response.status_code == 409
        assert 'already in progress' in response.get_json()['error']
        assert os.listdir(backup_dir) == []

    def test_lock_released_after_failed_run(self, client):
        with patch('webhost_backup.routes.run_routes.execute_backup_run', side_effect=OSError('disk gone')):
            with pytest.raises(OSError):
                client.post('/api/run/')

        assert run_routes._run_lock.locked() is False
        assert client.post('/api/run/').status_code == 200

    def test_get_not_allowed(self, client):
        assert client.get('/api/run/').status_code == 405


class TestRunToken:
    """Test the optional bearer token on the run routes."""

    @pytest.fixture
    def token_client(self, tmp_path, webspace, backup_dir, sites_file):
        app = create_app('testing', overrides={
            'SOURCE_ROOT': str(webspace),
            'BACKUP_TARGET_DIR': str(backup_dir),
            'SITES_FILE': str(sites_file),
            'LOG_DIR': str(tmp_path / 'logs'),
            'RUN_TOKEN': 'run-secret'
        })
        return app.test_client()

    def test_missing_token(self, token_client, backup_dir):
        response = token_client.post('/api/run/')

        assert response.status_code == 401
        assert os.listdir(backup_dir) == []

    def test_wrong_token(self, token_client):
        response = token_client.get('/api/run/usage', headers={'Authorization': 'Bearer wrong'})
        assert response.status_code == 401

    def test_valid_token(self, token_client):
        response = token_client.get('/api/run/usage', headers={'Authorization': 'Bearer run-secret'})
        assert response.status_code == 200


class TestUsage:
    """Test GET /api/run/usage."""

    def test_empty_directory(self, client):
        data = client.get('/api/run/usage').get_json()

        assert data['archives'] == 0
        assert data['size_bytes'] == 0
        assert data['quota_bytes'] == 100 * 1024 ** 2
        assert data['quota'] == '100.00M'
        assert data['percent'] == '0.00'

    def test_counts_archives_only(self, client, backup_dir):
        (backup_dir / 'a.tar.gz').write_bytes(b'x' * 1024)
        (backup_dir / 'notes.txt').write_bytes(b'x' * 1024)

        data = client.get('/api/run/usage').get_json()

        assert data['archives'] == 1
        assert data['size_bytes'] == 1024
