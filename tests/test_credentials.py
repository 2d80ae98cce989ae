"""Tests for credential and URL resolution."""

import pytest

from halopsa_sync.credentials import is_well_formed, normalize_base_url, resolve_credentials
from halopsa_sync.db import SQLiteEntityStore
from halopsa_sync.exceptions import ConfigurationError


@pytest.mark.parametrize("raw,expected", [
    ("https://halo.example.com", "https://halo.example.com"),
    ("https://halo.example.com/", "https://halo.example.com"),
    ("https://halo.example.com///", "https://halo.example.com"),
    ("https://halo.example.com/auth", "https://halo.example.com"),
    ("https://halo.example.com/auth/", "https://halo.example.com"),
    ("https://halo.example.com/api", "https://halo.example.com"),
    ("https://halo.example.com/api//", "https://halo.example.com"),
    ("https://halo.example.com/tenant/api", "https://halo.example.com/tenant"),
    ("", ""),
    (None, ""),
])
def test_normalize_base_url(raw, expected):
    assert normalize_base_url(raw) == expected


def test_is_well_formed():
    assert is_well_formed("https://halo.example.com")
    assert is_well_formed("http://localhost:8080")
    assert not is_well_formed("halo.example.com")
    assert not is_well_formed("ftp://halo.example.com")


def test_resolve_from_env_and_settings(store, test_env, halo_host):
    credentials = resolve_credentials(store, test_env)

    assert credentials.client_id == "client-abc"
    assert credentials.client_secret == "s3cret"
    assert credentials.tenant == "acme"
    assert credentials.auth_base_url == halo_host
    assert credentials.api_base_url == halo_host
    assert credentials.token_url == f"{halo_host}/auth/token"
    assert credentials.api_root == f"{halo_host}/api"
    assert credentials.ticket_url(42) == f"{halo_host}/Ticket?id=42"


def test_settings_client_id_and_tenant_win_over_env(store, test_env):
    settings = store.first('IntegrationSettings', {'setting_key': 'main'})
    store.update('IntegrationSettings', settings['id'], {
        'halopsa_client_id': 'from-settings',
        'halopsa_tenant': 'other-tenant',
    })

    credentials = resolve_credentials(store, test_env)

    assert credentials.client_id == 'from-settings'
    assert credentials.tenant == 'other-tenant'


def test_secret_is_not_in_repr(store, test_env):
    assert 's3cret' not in repr(resolve_credentials(store, test_env))


def test_missing_secret(store, test_env):
    del test_env['HALOPSA_CLIENT_SECRET']

    with pytest.raises(ConfigurationError) as exc:
        resolve_credentials(store, test_env)

    assert 'HALOPSA_CLIENT_SECRET' in exc.value.details


def test_missing_client_id(store, test_env):
    del test_env['HALOPSA_CLIENT_ID']

    with pytest.raises(ConfigurationError, match='credentials not configured'):
        resolve_credentials(store, test_env)


def test_missing_settings_record(test_db_path, test_env):
    store = SQLiteEntityStore(test_db_path)

    with pytest.raises(ConfigurationError, match='URLs not configured'):
        resolve_credentials(store, test_env)


def test_malformed_url(store, test_env):
    settings = store.first('IntegrationSettings', {'setting_key': 'main'})
    store.update('IntegrationSettings', settings['id'], {'halopsa_api_url': 'halo.example.com/api'})

    with pytest.raises(ConfigurationError) as exc:
        resolve_credentials(store, test_env)

    assert 'resource server URL' in exc.value.details
