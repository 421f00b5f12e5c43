"""
Run routes - Trigger a backup run and inspect the backup directory.
"""

import hmac
import threading
from functools import wraps

from flask import Blueprint, jsonify, request, current_app

from webhost_backup.config import (
    ConfigurationError,
    backup_config_from,
    ftp_config_from,
    locale_config_from,
    load_sites
)
from webhost_backup.backup.executor import execute_backup_run
from webhost_backup.backup.storage import StorageError, backup_directory_usage
from webhost_backup.utils.sizes import human_filesize, usage_percent


bp = Blueprint('run', __name__, url_prefix='/api/run')

_run_lock = threading.Lock()


def token_required(view):
    """Require 'Authorization: Bearer <RUN_TOKEN>' when a token is configured."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        expected = current_app.config.get('RUN_TOKEN')
        if expected:
            header = request.headers.get('Authorization', '')
            supplied = header[len('Bearer '):] if header.startswith('Bearer ') else ''
            if not hmac.compare_digest(supplied.encode(), expected.encode()):
                return jsonify({'error': 'Invalid or missing run token'}), 401
        return view(*args, **kwargs)

    return wrapped


@bp.route('/', methods=['POST'])
@token_required
def trigger_run():
    """
    Run backup, cleanup and FTP replication once.

    Returns:
        JSON with the result ledger, the run log and the directory usage
    """
    try:
        sites = load_sites(current_app.config['SITES_FILE'])
    except ConfigurationError as e:
        current_app.logger.error(f"Cannot start backup run: {e}")
        return jsonify({'error': str(e)}), 400

    backup_config = backup_config_from(current_app.config)

    # One run at a time
    if not _run_lock.acquire(blocking=False):
        current_app.logger.warning("Backup run requested while another run is in progress")
        return jsonify({'error': 'A backup run is already in progress'}), 409

    try:
        current_app.logger.info(f"Starting backup run for {len(sites)} sites")
        ledger, log = execute_backup_run(
            backup_config,
            ftp_config_from(current_app.config),
            locale_config_from(current_app.config),
            sites
        )
        usage = backup_directory_usage(backup_config.target_directory)
    finally:
        _run_lock.release()

    current_app.logger.info(
        f"Backup run finished with {ledger.error_count} failed items "
        f"(errors: {ledger.has_errors})"
    )

    return jsonify({
        'has_errors': ledger.has_errors,
        'ledger': ledger.to_dict(),
        'logs': log.to_list(),
        'usage': _usage_summary(usage['size'], backup_config.quota_bytes, usage['archives'])
    })


@bp.route('/usage', methods=['GET'])
@token_required
def get_usage():
    """
    Get the current size of the backup directory against the quota.

    Returns:
        JSON with archive count, size and quota usage
    """
    backup_config = backup_config_from(current_app.config)
    try:
        usage = backup_directory_usage(backup_config.target_directory)
    except StorageError as e:
        return jsonify({'error': str(e)}), 500

    return jsonify(_usage_summary(usage['size'], backup_config.quota_bytes, usage['archives']))


def _usage_summary(size, quota, archives):
    return {
        'archives': archives,
        'size_bytes': size,
        'size': human_filesize(size),
        'quota_bytes': quota,
        'quota': human_filesize(quota),
        'percent': usage_percent(size, quota)
    }
