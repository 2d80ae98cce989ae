"""Resolve HaloPSA credentials and base URLs.

Client id and tenant may come from the IntegrationSettings record or the
environment; the client secret only ever comes from the environment. The two
base URLs come from the settings record and are normalized so that admins can
paste either the bare host or the /auth and /api resource URLs.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional
from urllib.parse import urlparse

from .db import EntityStore
from .exceptions import ConfigurationError
from .models import IntegrationSettings

_TRAILING_SLASHES = re.compile(r'/+$')
_TRAILING_SEGMENT = re.compile(r'/(auth|api)$', re.IGNORECASE)


def normalize_base_url(url: Optional[str]) -> str:
    """Strip trailing slashes, then a trailing /auth or /api segment."""
    if not url:
        return ''
    url = _TRAILING_SLASHES.sub('', url.strip())
    url = _TRAILING_SEGMENT.sub('', url)
    return _TRAILING_SLASHES.sub('', url)


def is_well_formed(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


@dataclass(frozen=True)
class HaloCredentials:
    """Everything needed to talk to one HaloPSA instance."""
    client_id: str
    client_secret: str = field(repr=False)
    tenant: Optional[str]
    auth_base_url: str
    api_base_url: str

    @property
    def token_url(self) -> str:
        return f"{self.auth_base_url}/auth/token"

    @property
    def api_root(self) -> str:
        return f"{self.api_base_url}/api"

    @property
    def cache_key(self) -> tuple:
        return (self.auth_base_url, self.client_id, self.tenant or '')

    def ticket_url(self, ticket_id) -> str:
        """Agent-facing URL of a ticket."""
        return f"{self.api_base_url}/Ticket?id={ticket_id}"


def load_settings(store: EntityStore) -> IntegrationSettings:
    """Load the 'main' IntegrationSettings record (empty settings if absent)."""
    record = store.first('IntegrationSettings', {'setting_key': 'main'})
    return IntegrationSettings.from_record(record) if record else IntegrationSettings()


def resolve_credentials(
    store: EntityStore,
    environ: Optional[Mapping[str, str]] = None,
) -> HaloCredentials:
    """Build HaloCredentials from the settings record and environment.

    Raises:
        ConfigurationError: client id/secret missing, or a URL missing/malformed
    """
    env = os.environ if environ is None else environ
    settings = load_settings(store)

    client_id = settings.halopsa_client_id or env.get('HALOPSA_CLIENT_ID', '')
    client_secret = env.get('HALOPSA_CLIENT_SECRET', '')
    tenant = settings.halopsa_tenant or env.get('HALOPSA_TENANT') or None

    if not client_id or not client_secret:
        if not client_secret:
            details = 'The HALOPSA_CLIENT_SECRET environment variable is not set on the server.'
        else:
            details = 'Set HALOPSA_CLIENT_ID or the HaloPSA client id in the integration settings.'
        raise ConfigurationError('HaloPSA credentials not configured', details)

    auth_url = normalize_base_url(settings.halopsa_auth_url)
    api_url = normalize_base_url(settings.halopsa_api_url)

    if not auth_url or not api_url:
        raise ConfigurationError(
            'HaloPSA URLs not configured',
            'Set the HaloPSA authorisation server URL and resource server URL in the integration settings.',
        )

    for label, url in (('authorisation', auth_url), ('resource', api_url)):
        if not is_well_formed(url):
            raise ConfigurationError(
                'HaloPSA URLs not configured',
                f"The HaloPSA {label} server URL is not a valid http(s) URL: {url}",
            )

    return HaloCredentials(
        client_id=client_id,
        client_secret=client_secret,
        tenant=tenant,
        auth_base_url=auth_url,
        api_base_url=api_url,
    )
