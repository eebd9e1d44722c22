"""JsonStore / TokenStore — per-network values that survive a restart."""

import json

import pytest

from core.errors import SubsystemInitError
from core.store import JsonStore, TokenStore
from core.subsystems import AccountStore, CardStore, WalletStore

from tests.fakes import NETWORK


def test_values_survive_reload(tmp_path):
    first = JsonStore(tmp_path)
    first.set("gift_cards", NETWORK, [{"invoiceId": "a"}])
    first.set("gift_cards", "testnet", [{"invoiceId": "b"}])

    second = JsonStore(tmp_path)

    assert second.get("gift_cards", NETWORK) == [{"invoiceId": "a"}]
    assert second.get("gift_cards", "testnet") == [{"invoiceId": "b"}]
    on_disk = json.loads((tmp_path / "gift_cards.json").read_text())
    assert set(on_disk) == {"livenet", "testnet"}


def test_get_returns_a_copy(store):
    store.set("wallets", NETWORK, [{"id": 1}])

    store.get("wallets", NETWORK).append({"id": 2})

    assert store.get("wallets", NETWORK) == [{"id": 1}]


def test_corrupt_file_starts_empty(tmp_path):
    (tmp_path / "account.json").write_text("{not json")

    assert JsonStore(tmp_path).get("account", NETWORK, "fallback") == "fallback"


def test_token_marks_network_paired(store):
    tokens = TokenStore(store)
    assert not tokens.is_paired(NETWORK)

    tokens.set_token(NETWORK, "tok-1")
    assert tokens.is_paired(NETWORK)
    assert not tokens.is_paired("testnet")

    tokens.clear_token(NETWORK)
    assert tokens.get_token(NETWORK) is None


async def test_account_store_keeps_cached_user_without_snapshot(store):
    account = AccountStore(store)
    await account.init(NETWORK, {"user": {"eid": "e1"}})

    restarted = AccountStore(store)
    await restarted.init(NETWORK, {"user": None})

    assert restarted.get_user(NETWORK) == {"eid": "e1"}


async def test_corrupt_wallet_list_fails_init(store):
    store.set("wallets", NETWORK, {"not": "a list"})

    with pytest.raises(SubsystemInitError):
        await WalletStore(store).init(NETWORK, {})


async def test_card_store_defaults_to_empty():
    cards = CardStore()

    await cards.init(NETWORK, {"cards": None})

    assert cards.get_cards(NETWORK) == []
