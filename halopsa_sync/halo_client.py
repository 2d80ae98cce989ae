"""HaloPSA REST API client."""

import logging
from typing import Optional

import httpx

from .credentials import HaloCredentials
from .exceptions import ExternalApiError
from .models import HaloClientRecord, HaloTicket
from .token_manager import TokenCache

logger = logging.getLogger(__name__)


class HaloClient:
    """Authenticated HTTP client for the HaloPSA tickets, actions and client APIs.

    Failed calls are never retried; a 401 drops the cached token so the next
    call authenticates again.
    """

    def __init__(
        self,
        credentials: HaloCredentials,
        token_cache: TokenCache,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30,
    ):
        self.credentials = credentials
        self.token_cache = token_cache
        self._http = httpx.Client(timeout=timeout, transport=transport)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get_headers(self) -> dict:
        """Get request headers."""
        token = self.token_cache.get_or_refresh(self.credentials, http=self._http)
        return {
            'Authorization': f"Bearer {token}",
            'Content-Type': 'application/json',
        }

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict = None,
        json_data=None,
    ):
        """Make a request to the HaloPSA API and decode the JSON body."""
        url = f"{self.credentials.api_root}/{endpoint}"
        headers = self._get_headers()

        try:
            response = self._http.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_data,
            )
        except httpx.HTTPError as e:
            logger.error(f"HaloPSA {method} {endpoint} failed: {e}")
            raise ExternalApiError(f"HaloPSA request failed: {method} {endpoint}", 0, str(e))

        if response.status_code == 401:
            self.token_cache.invalidate(self.credentials)

        if not response.is_success:
            logger.error(f"HaloPSA {method} {endpoint} returned {response.status_code}")
            raise ExternalApiError(
                f"HaloPSA request failed ({response.status_code}): {method} {endpoint}",
                response.status_code,
                response.text,
            )

        # Some endpoints return empty body
        if response.status_code == 204 or not response.text:
            return {}

        try:
            return response.json()
        except ValueError:
            logger.error(f"HaloPSA {method} {endpoint} returned a non-JSON body")
            raise ExternalApiError(
                f"HaloPSA returned invalid JSON: {method} {endpoint}",
                response.status_code,
                response.text,
            )

    @staticmethod
    def _unwrap_list(data, key: str) -> list:
        """List endpoints return either a bare array or {key: [...]}."""
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return data.get(key) or []
        return []

    # =========================================================================
    # TICKETS
    # =========================================================================

    def create_or_update_tickets(self, payload: list[dict]) -> list[dict]:
        """Upsert tickets. Entries with an id update, entries without create."""
        data = self._request('POST', 'Tickets', json_data=payload)
        if isinstance(data, dict) and data:
            return [data]
        return data or []

    def get_ticket(self, ticket_id) -> HaloTicket:
        """Get a ticket by id."""
        data = self._request('GET', f'Tickets/{ticket_id}')
        if not isinstance(data, dict) or data.get('id') is None:
            raise ExternalApiError(f"HaloPSA returned no ticket for #{ticket_id}", 0, str(data))
        return HaloTicket.from_api(data)

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def list_actions(self, ticket_id) -> list[dict]:
        """Get the actions (notes, emails, status changes) on a ticket."""
        data = self._request('GET', 'Actions', params={'ticket_id': ticket_id})
        return self._unwrap_list(data, 'actions')

    def create_actions(self, payload: list[dict]) -> list[dict]:
        """Create actions on tickets."""
        data = self._request('POST', 'Actions', json_data=payload)
        if isinstance(data, dict) and data:
            return [data]
        return data or []

    # =========================================================================
    # CLIENTS
    # =========================================================================

    def search_clients(self, query: str, count: int = 5) -> list[HaloClientRecord]:
        """Search clients by name."""
        data = self._request('GET', 'Client', params={'search': query, 'count': count})
        return [HaloClientRecord.from_api(c) for c in self._unwrap_list(data, 'clients')]

    def list_clients(self, count: int = 500) -> list[HaloClientRecord]:
        """List clients."""
        data = self._request('GET', 'Client', params={'count': count})
        return [HaloClientRecord.from_api(c) for c in self._unwrap_list(data, 'clients')]
