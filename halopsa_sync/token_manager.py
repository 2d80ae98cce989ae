"""OAuth2 client-credentials tokens for HaloPSA, with a scoped cache."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from .credentials import HaloCredentials
from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass
class AccessToken:
    """Bearer token and the monotonic time it stops being usable."""
    value: str = field(repr=False)
    expires_at: float

    def is_valid(self, now: float, skew: float = 0) -> bool:
        return now < self.expires_at - skew


def acquire_token(
    auth_base_url: str,
    client_id: str,
    client_secret: str,
    tenant: Optional[str] = None,
    http: Optional[httpx.Client] = None,
    default_ttl: int = 3600,
    clock: Callable[[], float] = time.monotonic,
) -> AccessToken:
    """Exchange client credentials for a bearer token.

    Raises:
        AuthenticationError: the token endpoint rejected the request
    """
    form = {
        'grant_type': 'client_credentials',
        'client_id': client_id,
        'client_secret': client_secret,
        'scope': 'all',
    }
    if tenant:
        form['tenant'] = tenant

    token_url = f"{auth_base_url}/auth/token"
    owns_client = http is None
    client = http or httpx.Client(timeout=30)
    try:
        response = client.post(token_url, data=form)
    except httpx.HTTPError as e:
        raise AuthenticationError('Failed to authenticate with HaloPSA', f"Token request failed: {e}")
    finally:
        if owns_client:
            client.close()

    if not response.is_success:
        logger.error(f"HaloPSA token request failed with status {response.status_code}")
        raise AuthenticationError(
            'Failed to authenticate with HaloPSA',
            f"Token request failed ({response.status_code}): {response.text}",
        )

    try:
        data = response.json()
    except ValueError:
        data = {}

    value = data.get('access_token') if isinstance(data, dict) else None
    if not value:
        raise AuthenticationError(
            'Failed to authenticate with HaloPSA',
            'Token response did not include an access_token',
        )

    try:
        ttl = int(data.get('expires_in') or default_ttl)
    except (TypeError, ValueError):
        ttl = default_ttl

    return AccessToken(value=value, expires_at=clock() + ttl)


class TokenCache:
    """Token cache keyed by (auth URL, client id, tenant).

    Tokens are reused until `skew` seconds before they expire. Callers
    invalidate an entry when the provider rejects its token.
    """

    def __init__(
        self,
        default_ttl: int = 3600,
        skew: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.skew = skew
        self._clock = clock
        self._tokens: dict[tuple, AccessToken] = {}
        self._lock = threading.Lock()

    def get_or_refresh(self, credentials: HaloCredentials, http: Optional[httpx.Client] = None) -> str:
        """Return a valid bearer token, acquiring a new one if needed."""
        key = credentials.cache_key
        with self._lock:
            cached = self._tokens.get(key)
            if cached and cached.is_valid(self._clock(), self.skew):
                return cached.value

            logger.debug(f"Acquiring HaloPSA token for client {credentials.client_id}")
            token = acquire_token(
                credentials.auth_base_url,
                credentials.client_id,
                credentials.client_secret,
                credentials.tenant,
                http=http,
                default_ttl=self.default_ttl,
                clock=self._clock,
            )
            self._tokens[key] = token
            return token.value

    def invalidate(self, credentials: HaloCredentials) -> None:
        """Drop the cached token for these credentials."""
        with self._lock:
            if self._tokens.pop(credentials.cache_key, None) is not None:
                logger.info(f"Invalidated HaloPSA token for client {credentials.client_id}")

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
