"""Resolve which HaloPSA client a new ticket belongs to.

Resolution is best effort. Each policy either returns a HaloPSA client id or
None, and `ChainedClientResolver` takes the first hit:

1. ExplicitIdStrategy: the caller passed a literal "halo_<n>" reference
2. StoredMappingStrategy: the referenced Customer record carries a HaloPSA id
3. FuzzySearchStrategy: provider-side name search, exact (case-insensitive)
   match preferred, otherwise the first result

The fuzzy search can attribute a ticket to the wrong client when names are
close; callers that need certainty should pass an explicit id.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .db import EntityStore
from .exceptions import ExternalApiError
from .halo_client import HaloClient
from .models import Customer

logger = logging.getLogger(__name__)

_HALO_REF = re.compile(r'^halo_(\d+)$')


def parse_halo_ref(value: Optional[str]) -> Optional[int]:
    """Parse a "halo_<n>" reference into n."""
    if not value:
        return None
    match = _HALO_REF.match(str(value).strip())
    return int(match.group(1)) if match else None


@dataclass
class ClientResolutionRequest:
    """What the caller knows about the client."""
    client_ref: Optional[str] = None  # "halo_<n>" or an internal Customer id
    client_name: Optional[str] = None


class ClientResolutionStrategy(ABC):
    """One policy for finding a HaloPSA client id."""

    name = 'base'

    @abstractmethod
    def resolve(self, request: ClientResolutionRequest) -> Optional[int]:
        """Return a HaloPSA client id, or None if this policy has no answer."""


class ExplicitIdStrategy(ClientResolutionStrategy):
    name = 'explicit_id'

    def resolve(self, request: ClientResolutionRequest) -> Optional[int]:
        return parse_halo_ref(request.client_ref)


class StoredMappingStrategy(ClientResolutionStrategy):
    """Look up the internal Customer and use its stored HaloPSA id."""

    name = 'stored_mapping'

    def __init__(self, store: EntityStore):
        self.store = store

    def resolve(self, request: ClientResolutionRequest) -> Optional[int]:
        if not request.client_ref or parse_halo_ref(request.client_ref) is not None:
            return None

        record = self.store.get('Customer', request.client_ref)
        if not record:
            return None

        customer = Customer.from_record(record)
        if customer.halopsa_id:
            try:
                return int(customer.halopsa_id)
            except ValueError:
                logger.warning(f"Customer {customer.id} has non-numeric halopsa_id {customer.halopsa_id!r}")
        return parse_halo_ref(customer.external_id)


class FuzzySearchStrategy(ClientResolutionStrategy):
    """Search HaloPSA clients by name."""

    name = 'fuzzy_search'

    def __init__(self, halo: HaloClient, count: int = 5):
        self.halo = halo
        self.count = count

    def resolve(self, request: ClientResolutionRequest) -> Optional[int]:
        if not request.client_name:
            return None

        try:
            clients = self.halo.search_clients(request.client_name, count=self.count)
        except ExternalApiError as e:
            logger.warning(f"HaloPSA client search for {request.client_name!r} failed: {e}")
            return None

        if not clients:
            return None

        wanted = request.client_name.lower()
        for client in clients:
            if client.name.lower() == wanted:
                return client.id
        return clients[0].id


class ChainedClientResolver:
    """Try each strategy in order and return the first client id found."""

    def __init__(self, strategies: list[ClientResolutionStrategy]):
        self.strategies = strategies

    def resolve(self, request: ClientResolutionRequest) -> Optional[int]:
        for strategy in self.strategies:
            client_id = strategy.resolve(request)
            if client_id is not None:
                logger.info(f"Resolved HaloPSA client {client_id} via {strategy.name}")
                return client_id

        logger.info("No HaloPSA client resolved; ticket will be created without a client")
        return None


def default_resolver(store: EntityStore, halo: HaloClient) -> ChainedClientResolver:
    return ChainedClientResolver([
        ExplicitIdStrategy(),
        StoredMappingStrategy(store),
        FuzzySearchStrategy(halo),
    ])
