"""Tests for HaloPSA client resolution policies."""

import pytest

from halopsa_sync.client_resolution import (
    ChainedClientResolver,
    ClientResolutionRequest,
    ExplicitIdStrategy,
    FuzzySearchStrategy,
    StoredMappingStrategy,
    default_resolver,
    parse_halo_ref,
)
from halopsa_sync.exceptions import ExternalApiError
from halopsa_sync.models import HaloClientRecord


class FakeSearch:
    """Stand-in for HaloClient.search_clients."""

    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.queries = []

    def search_clients(self, query, count=5):
        self.queries.append((query, count))
        if self.error:
            raise self.error
        return self.results


@pytest.mark.parametrize("value,expected", [
    ("halo_17", 17),
    (" halo_3 ", 3),
    ("halo_", None),
    ("halo_abc", None),
    ("cust-1", None),
    ("", None),
    (None, None),
])
def test_parse_halo_ref(value, expected):
    assert parse_halo_ref(value) == expected


def test_explicit_id():
    strategy = ExplicitIdStrategy()

    assert strategy.resolve(ClientResolutionRequest(client_ref='halo_8')) == 8
    assert strategy.resolve(ClientResolutionRequest(client_ref='c1')) is None


class TestStoredMapping:
    def test_uses_halopsa_id(self, store):
        store.create('Customer', {'id': 'c1', 'name': 'Acme', 'halopsa_id': 31})

        assert StoredMappingStrategy(store).resolve(ClientResolutionRequest(client_ref='c1')) == 31

    def test_falls_back_to_external_id(self, store):
        store.create('Customer', {'id': 'c1', 'name': 'Acme', 'external_id': 'halo_12'})

        assert StoredMappingStrategy(store).resolve(ClientResolutionRequest(client_ref='c1')) == 12

    def test_unknown_or_unmapped_customer(self, store):
        store.create('Customer', {'id': 'c1', 'name': 'Acme'})
        strategy = StoredMappingStrategy(store)

        assert strategy.resolve(ClientResolutionRequest(client_ref='c1')) is None
        assert strategy.resolve(ClientResolutionRequest(client_ref='missing')) is None
        assert strategy.resolve(ClientResolutionRequest()) is None


class TestFuzzySearch:
    def test_prefers_exact_case_insensitive_match(self):
        halo = FakeSearch([HaloClientRecord(1, 'Acme Holdings'), HaloClientRecord(2, 'ACME')])

        assert FuzzySearchStrategy(halo).resolve(ClientResolutionRequest(client_name='acme')) == 2
        assert halo.queries == [('acme', 5)]

    def test_first_result_when_no_exact_match(self):
        halo = FakeSearch([HaloClientRecord(4, 'Acme Holdings'), HaloClientRecord(5, 'Acme UK')])

        assert FuzzySearchStrategy(halo).resolve(ClientResolutionRequest(client_name='Acme')) == 4

    def test_no_results(self):
        assert FuzzySearchStrategy(FakeSearch()).resolve(ClientResolutionRequest(client_name='Nobody')) is None

    def test_search_failure_is_not_fatal(self):
        halo = FakeSearch(error=ExternalApiError('boom', 500, 'down'))

        assert FuzzySearchStrategy(halo).resolve(ClientResolutionRequest(client_name='Acme')) is None

    def test_skipped_without_name(self):
        halo = FakeSearch([HaloClientRecord(1, 'Acme')])

        assert FuzzySearchStrategy(halo).resolve(ClientResolutionRequest(client_ref='c1')) is None
        assert halo.queries == []


class TestChain:
    def test_first_hit_wins(self, store):
        store.create('Customer', {'id': 'c1', 'halopsa_id': 9})
        halo = FakeSearch([HaloClientRecord(1, 'Acme')])
        resolver = default_resolver(store, halo)

        assert resolver.resolve(ClientResolutionRequest(client_ref='halo_3', client_name='Acme')) == 3
        assert resolver.resolve(ClientResolutionRequest(client_ref='c1', client_name='Acme')) == 9
        assert halo.queries == []

    def test_falls_through_to_search(self, store):
        halo = FakeSearch([HaloClientRecord(1, 'Acme')])
        resolver = default_resolver(store, halo)

        assert resolver.resolve(ClientResolutionRequest(client_ref='unknown', client_name='Acme')) == 1

    def test_nothing_resolved(self):
        assert ChainedClientResolver([ExplicitIdStrategy()]).resolve(ClientResolutionRequest()) is None
