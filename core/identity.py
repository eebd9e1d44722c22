"""
App Identity — one durable key pair per network.

The identity authenticates the application (not the end user) to the
backend: every signed request carries the public id and a signature made
with the private key.

Contract:
- ensure_identity() leaves a valid stored identity untouched
- generation failure is reported out-of-band (diagnostic log + signal),
  never raised; the caller receives whatever identity is held (maybe None)
"""

import logging
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from core.config import network_name
from core.diagnostics import DiagnosticLog
from core.signals import SignalBus, IDENTITY_GENERATED, IDENTITY_FAILED
from core.store import JsonStore

logger = logging.getLogger("walletd.identity")

IDENTITY_KEY = "app_identity"


@dataclass(frozen=True)
class Identity:
    network: str
    public_id: str
    private_key: str

    def to_dict(self) -> dict:
        return asdict(self)

    def masked(self) -> dict:
        """Safe for logs and API responses. NEVER includes the private key."""
        return {"network": self.network, "public_id": self.public_id}


def generate_keypair() -> tuple[str, str]:
    """Generate a fresh key pair. Returns (public_id, private_key_hex)."""
    from eth_account import Account
    account = Account.create()
    return account.address, account.key.hex()


def _from_record(record) -> Optional[Identity]:
    """A stored record is valid only if it is a non-empty dict with a private key."""
    if not isinstance(record, dict) or not record:
        return None
    if not record.get("private_key"):
        return None
    return Identity(
        network=record.get("network", ""),
        public_id=record.get("public_id", ""),
        private_key=record["private_key"],
    )


class IdentityProvider:
    """Owns the per-network identities. Other components get read-only copies."""

    def __init__(
        self,
        store: JsonStore,
        signals: SignalBus,
        log: DiagnosticLog,
        generator: Callable[[], tuple[str, str]] = generate_keypair,
    ):
        self._store = store
        self._signals = signals
        self._log = log
        self._generator = generator

    def get_identity(self, network: str) -> Optional[Identity]:
        return _from_record(self._store.get(IDENTITY_KEY, network))

    async def ensure_identity(self, network: str) -> Optional[Identity]:
        self._log.info("Initializing App Identity...")
        identity = self.get_identity(network)

        if identity is None:
            try:
                self._log.info("Generating new App Identity...")
                public_id, private_key = self._generator()
                generated = Identity(network=network_name(network), public_id=public_id, private_key=private_key)
                self._store.set(IDENTITY_KEY, network, generated.to_dict())
                # Only a persisted identity is handed out
                identity = generated
                await self._signals.emit(IDENTITY_GENERATED, identity.masked())
            except Exception as e:
                self._log.error(f"Error generating App Identity: {type(e).__name__}: {e}")
                await self._signals.emit(IDENTITY_FAILED, {"network": network_name(network), "error": str(e)})
                return identity

        self._log.info("Initialized App Identity successfully.")
        return identity
