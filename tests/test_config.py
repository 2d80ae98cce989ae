"""Tests for configuration loading and logging setup."""

import logging

import pytest

from halopsa_sync.config import Config
from halopsa_sync.logging_setup import setup_logging

ENV_VARS = [
    'HALOPSA_SYNC_ENV', 'HALOPSA_CLIENT_ID', 'HALOPSA_CLIENT_SECRET', 'HALOPSA_TENANT',
    'HALOPSA_HTTP_TIMEOUT', 'HALOPSA_TOKEN_TTL', 'HALOPSA_TOKEN_SKEW', 'HALOPSA_TICKET_TYPE',
    'HALOPSA_AUDIT_QUEUE_SIZE', 'HALOPSA_SYNC_DB_PATH', 'HALOPSA_SYNC_API_HOST',
    'HALOPSA_SYNC_API_PORT', 'HALOPSA_SYNC_API_KEY', 'CORS_ALLOWED_ORIGINS',
    'HALOPSA_SYNC_LOG_LEVEL', 'HALOPSA_SYNC_LOG_FILE', 'HALOPSA_SYNC_CONFIG',
]


@pytest.fixture
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_defaults(clean_env, tmp_path):
    config = Config(tmp_path / 'missing.yaml')

    assert config.ENV == 'dev'
    assert config.HTTP_TIMEOUT == 30
    assert config.TOKEN_TTL == 3600
    assert config.TOKEN_SKEW == 60
    assert config.TICKET_TYPE == 'Gamma Default'
    assert config.API_PORT == 8300
    assert config.CORS_ALLOWED_ORIGINS == ['http://localhost:5173']
    assert not config.is_configured()


def test_yaml_then_env_override(clean_env, tmp_path):
    path = tmp_path / 'halopsa_sync.yaml'
    path.write_text(
        "env: stg\n"
        "halopsa:\n"
        "  token_skew: 120\n"
        "  ticket_type: Project\n"
        "api:\n"
        "  port: 9000\n"
        "  cors_origins: https://a.test, https://b.test\n"
    )
    clean_env.setenv('HALOPSA_SYNC_API_PORT', '9100')

    config = Config(path)

    assert config.ENV == 'stg'
    assert config.TOKEN_SKEW == 120
    assert config.TICKET_TYPE == 'Project'
    assert config.API_PORT == 9100
    assert config.CORS_ALLOWED_ORIGINS == ['https://a.test', 'https://b.test']


def test_validate(clean_env, tmp_path):
    clean_env.setenv('HALOPSA_SYNC_ENV', 'prd')
    clean_env.setenv('HALOPSA_TOKEN_SKEW', '4000')

    errors = Config(tmp_path / 'missing.yaml').validate()

    assert 'HALOPSA_CLIENT_SECRET not set' in errors
    assert 'HALOPSA_TOKEN_SKEW must be smaller than HALOPSA_TOKEN_TTL' in errors
    assert 'HALOPSA_SYNC_API_KEY not set in production' in errors


def test_setup_logging_with_file(tmp_path):
    log_file = tmp_path / 'logs' / 'sync.log'

    logger = setup_logging('debug', str(log_file))
    try:
        logging.getLogger('halopsa_sync.sync_engine').debug('hello from the engine')
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert 'hello from the engine' in log_file.read_text()
        assert '[MainThread]' in log_file.read_text()
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        for name in ('httpx', 'httpcore'):
            logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.mark.parametrize("level,http_level", [
    ("INFO", logging.WARNING),
    ("WARNING", logging.WARNING),
    ("DEBUG", logging.DEBUG),
])
def test_setup_logging_tunes_http_client_loggers(level, http_level):
    logger = setup_logging(level)
    try:
        assert logging.getLogger('httpx').level == http_level
        assert logging.getLogger('httpcore').level == http_level
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        for name in ('httpx', 'httpcore'):
            logging.getLogger(name).setLevel(logging.NOTSET)
