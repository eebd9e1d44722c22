"""
Feature Stores — independently initialisable pieces of app state.

Each store exposes init(network, seed). The initializer runs them in a
fixed order (wallets → account → cards), handing each its slice of the
user snapshot. It catches nothing: a failing store aborts bootstrap.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from core.config import network_name
from core.diagnostics import DiagnosticLog
from core.errors import SubsystemInitError
from core.store import JsonStore
from core.user_data import UserSnapshot

logger = logging.getLogger("walletd.subsystems")


class FeatureStore(ABC):
    """Abstract base for a store initialised during bootstrap."""

    @property
    @abstractmethod
    def store_id(self) -> str:
        ...

    @abstractmethod
    async def init(self, network: str, seed: dict) -> None:
        ...


# ============================================================
# CONCRETE STORES
# ============================================================

class WalletStore(FeatureStore):
    """Locally held wallets. Seeded from disk only; the snapshot has no slice for it."""

    KEY = "wallets"

    def __init__(self, store: JsonStore):
        self._store = store
        self.wallets: dict[str, list[dict]] = {}

    @property
    def store_id(self) -> str:
        return "wallets"

    async def init(self, network: str, seed: dict) -> None:
        wallets = self._store.get(self.KEY, network, [])
        if not isinstance(wallets, list):
            raise SubsystemInitError(self.store_id, f"corrupt wallet list for {network}")
        self.wallets[network_name(network)] = wallets
        logger.info(f"Wallet store ready: {len(wallets)} wallet(s) on {network}")


class AccountStore(FeatureStore):
    """
    The paired account (user profile).

    A fresh profile from the snapshot replaces the cached one and is
    persisted; with no profile the last cached one stays in place.
    """

    KEY = "account"

    def __init__(self, store: JsonStore):
        self._store = store
        self.users: dict[str, Optional[dict]] = {}

    @property
    def store_id(self) -> str:
        return "account"

    async def init(self, network: str, seed: dict) -> None:
        user = seed.get("user")
        if user is not None:
            if not isinstance(user, dict):
                raise SubsystemInitError(self.store_id, "user profile must be an object")
            self._store.set(self.KEY, network, user)
        else:
            user = self._store.get(self.KEY, network)
        self.users[network_name(network)] = user

    def get_user(self, network: str) -> Optional[dict]:
        return self.users.get(network_name(network))


class CardStore(FeatureStore):
    """Debit cards linked to the account. Replaced wholesale on every init."""

    def __init__(self):
        self.cards: dict[str, list[dict]] = {}

    @property
    def store_id(self) -> str:
        return "cards"

    async def init(self, network: str, seed: dict) -> None:
        cards = seed.get("cards") or []
        if not isinstance(cards, list):
            raise SubsystemInitError(self.store_id, "cards must be a list")
        self.cards[network_name(network)] = cards
        logger.info(f"Card store ready: {len(cards)} card(s) on {network}")

    def get_cards(self, network: str) -> list[dict]:
        return self.cards.get(network_name(network), [])


# ============================================================
# INITIALIZER
# ============================================================

class SubsystemInitializer:
    """Runs wallet, account and card store inits in that order."""

    def __init__(
        self,
        wallets: WalletStore,
        account: AccountStore,
        cards: CardStore,
        log: Optional[DiagnosticLog] = None,
    ):
        self.wallets = wallets
        self.account = account
        self.cards = cards
        self._log = log

    async def init_all(self, network: str, snapshot: Optional[UserSnapshot]) -> None:
        profile = snapshot.profile if snapshot else None
        cards = snapshot.cards if snapshot else None

        stages: list[tuple[FeatureStore, dict]] = [
            (self.wallets, {}),
            (self.account, {"user": profile}),
            (self.cards, {"cards": cards}),
        ]
        for store, seed in stages:
            if self._log:
                self._log.info(f"Initializing {store.store_id} store...")
            await store.init(network, seed)
