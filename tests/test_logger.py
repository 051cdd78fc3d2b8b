"""Tests for logging setup and progress tracking."""

import logging

import pytest

from blockshare.logger import ProgressTracker, _sanitize_config, setup_logging


def test_verbosity_levels():
    assert setup_logging(verbosity=0).level == logging.WARNING
    assert setup_logging(verbosity=1).level == logging.INFO
    assert setup_logging(verbosity=2).level == logging.DEBUG
    assert setup_logging(verbosity=2, level='error').level == logging.ERROR


def test_invalid_level():
    with pytest.raises(ValueError):
        setup_logging(level='LOUD')


def test_file_handler(tmp_path):
    log_file = tmp_path / 'run.log'
    logger = setup_logging(verbosity=1, log_file=str(log_file))
    logging.getLogger('blockshare.test').info('hello file')

    for handler in logger.handlers:
        handler.flush()
    assert 'hello file' in log_file.read_text(encoding='utf-8')
    setup_logging()


def test_sanitize_config_masks_secrets():
    config = {
        'kernel': {'token': 'k-secret', 'base_url': 'http://127.0.0.1:6806'},
        'storage': {'access_key_id': 'AKID', 'secret_access_key': 'sk', 'bucket': 'b', 'region': ''},
    }

    sanitized = _sanitize_config(config)

    assert sanitized['kernel']['token'] == '***REDACTED***'
    assert sanitized['kernel']['base_url'] == 'http://127.0.0.1:6806'
    assert sanitized['storage']['access_key_id'] == '***REDACTED***'
    assert sanitized['storage']['secret_access_key'] == '***REDACTED***'
    assert sanitized['storage']['bucket'] == 'b'
    assert config['kernel']['token'] == 'k-secret'


def test_progress_tracker_counts():
    with ProgressTracker(3, 'assets') as tracker:
        tracker.increment(success=True)
        tracker.increment(success=False)
        tracker.increment(success=True)

    stats = tracker.get_stats()
    assert stats['processed'] == 3
    assert stats['successful'] == 2
    assert stats['failed'] == 1
