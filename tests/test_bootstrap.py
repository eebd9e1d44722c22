"""BootstrapSequencer — ordered pipeline, partial-failure tolerance, single pass."""

import json

import pytest

from core.bootstrap import BootstrapOutcome, BootstrapSequencer, BootstrapState
from core.errors import BootstrapAlreadyStartedError, SubsystemInitError, TransportError
from core.identity import IdentityProvider
from core.signals import BOOTSTRAP_FAILED, BOOTSTRAP_SUCCEEDED
from core.subsystems import FeatureStore, SubsystemInitializer
from core.user_data import UserDataFetcher

from tests.fakes import NETWORK


class RecordingStore(FeatureStore):
    def __init__(self, name, trail, fail=False):
        self.name = name
        self.trail = trail
        self.fail = fail
        self.seeds = []

    @property
    def store_id(self):
        return self.name

    async def init(self, network, seed):
        self.trail.append(self.name)
        self.seeds.append(seed)
        if self.fail:
            raise SubsystemInitError(self.name, "disk full")


def _keypair():
    return "0x" + "1" * 40, "2" * 64


@pytest.fixture
def trail():
    return []


@pytest.fixture
def stores(trail):
    return {
        "wallets": RecordingStore("wallets", trail),
        "account": RecordingStore("account", trail),
        "cards": RecordingStore("cards", trail),
    }


def _sequencer(store, registry, tokens, signals, diagnostics, stores, generator=_keypair):
    identities = IdentityProvider(store, signals, diagnostics, generator=generator)
    initializer = SubsystemInitializer(stores["wallets"], stores["account"], stores["cards"], diagnostics)
    return BootstrapSequencer(
        identities, registry, UserDataFetcher(registry, diagnostics), initializer,
        tokens, signals, diagnostics, settle_seconds=0,
    )


async def test_unpaired_bootstrap_succeeds_without_fetch(
    store, registry, graphql, tokens, signals, diagnostics, stores, trail,
):
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores)

    outcome = await sequencer.run(NETWORK)

    assert outcome == BootstrapOutcome.SUCCEEDED
    assert sequencer.state == BootstrapState.SUCCEEDED
    assert graphql.calls == []
    assert trail == ["wallets", "account", "cards"]
    assert stores["account"].seeds == [{"user": None}]
    assert stores["cards"].seeds == [{"cards": None}]
    assert signals.emitted(BOOTSTRAP_SUCCEEDED) == [{"network": NETWORK.value}]
    assert diagnostics.messages()[0] == "Initializing app..."
    assert diagnostics.messages()[-1] == "Initialized app successfully."


async def test_paired_bootstrap_seeds_stores_with_user_data(
    store, registry, graphql, tokens, signals, diagnostics, stores,
):
    tokens.set_token(NETWORK, "tok-123")
    graphql.response = {"user": {"basicInfo": {"eid": "e1"}, "cards": [{"id": "c1"}]}}
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores)

    assert await sequencer.run(NETWORK) == BootstrapOutcome.SUCCEEDED

    assert stores["account"].seeds == [{"user": {"eid": "e1"}}]
    assert stores["cards"].seeds == [{"cards": [{"id": "c1"}]}]


async def test_failed_user_data_fetch_still_succeeds(
    store, registry, graphql, tokens, signals, diagnostics, stores, trail,
):
    tokens.set_token(NETWORK, "tok-123")
    graphql.response = TransportError("Request failed with status code 503", url="https://x/graphql")
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores)

    outcome = await sequencer.run(NETWORK)

    assert outcome == BootstrapOutcome.SUCCEEDED
    assert trail == ["wallets", "account", "cards"]
    assert stores["account"].seeds == [{"user": None}]
    assert "Failed to refresh user data. Continuing initialization." in diagnostics.messages("info")


async def test_failing_subsystem_fails_bootstrap_and_stops_later_stages(
    store, registry, tokens, signals, diagnostics, stores, trail,
):
    stores["account"].fail = True
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores)

    outcome = await sequencer.run(NETWORK)

    assert outcome == BootstrapOutcome.FAILED
    assert trail == ["wallets", "account"]
    assert sequencer.last_error == "account: disk full"
    detail = json.loads(sequencer.last_error_detail)
    assert detail["type"] == "SubsystemInitError"
    assert detail["subsystem"] == "account"
    assert signals.emitted(BOOTSTRAP_FAILED)[0]["error"] == "account: disk full"
    assert signals.emitted(BOOTSTRAP_SUCCEEDED) == []
    assert "Failed to initialize app." in diagnostics.messages("error")


async def test_identity_failure_halts_before_network_setup(
    store, rest, graphql, tokens, signals, diagnostics, stores, trail,
):
    from core.api_clients import ApiClientRegistry

    registry = ApiClientRegistry(factories={
        "rest": lambda t, n, i: rest,
        "graphql": lambda t, n, i: graphql,
    })

    def broken():
        raise RuntimeError("no entropy")

    tokens.set_token(NETWORK, "tok-123")
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores, generator=broken)

    outcome = await sequencer.run(NETWORK)

    assert outcome == BootstrapOutcome.FAILED
    assert json.loads(sequencer.last_error_detail)["type"] == "IdentityGenerationError"
    assert not registry.is_configured(NETWORK)
    assert graphql.calls == []
    assert trail == []


async def test_run_clears_previous_diagnostics(store, registry, tokens, signals, diagnostics, stores):
    diagnostics.error("stale entry from a previous run")
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores)

    await sequencer.run(NETWORK)

    assert "stale entry from a previous run" not in diagnostics.messages()


async def test_sequencer_runs_only_once(store, registry, tokens, signals, diagnostics, stores, trail):
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores)
    await sequencer.run(NETWORK)

    with pytest.raises(BootstrapAlreadyStartedError):
        await sequencer.run(NETWORK)

    assert trail == ["wallets", "account", "cards"]
    assert sequencer.outcome == BootstrapOutcome.SUCCEEDED


async def test_outcome_is_pending_before_run(store, registry, tokens, signals, diagnostics, stores):
    sequencer = _sequencer(store, registry, tokens, signals, diagnostics, stores)

    assert sequencer.outcome == BootstrapOutcome.PENDING
    assert sequencer.get_status()["state"] == "idle"
