"""Shared fixtures — temp-dir stores and a registry wired to fake clients."""

import pytest

from core.api_clients import ApiClientRegistry
from core.diagnostics import DiagnosticLog
from core.signals import SignalBus
from core.store import JsonStore, TokenStore

from tests.fakes import NETWORK, TEST_IDENTITY, FakeGraphQlClient, FakeRestClient


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "data")


@pytest.fixture
def tokens(store):
    return TokenStore(store)


@pytest.fixture
def signals():
    return SignalBus()


@pytest.fixture
def diagnostics():
    return DiagnosticLog()


@pytest.fixture
def rest():
    return FakeRestClient()


@pytest.fixture
def graphql():
    return FakeGraphQlClient()


@pytest.fixture
def registry(rest, graphql):
    reg = ApiClientRegistry(factories={
        "rest": lambda transport, network, identity: rest,
        "graphql": lambda transport, network, identity: graphql,
    })
    reg.configure(NETWORK, TEST_IDENTITY)
    return reg
