"""
Bootstrap Sequencer — one ordered pass from cold start to a usable app.

Pipeline (each step exactly once per attempt):
  1. Clear the diagnostic log
  2. Ensure an app identity for the network (hard stop if none)
  3. Configure the API clients for network + identity
  4. Refresh user data, only if the network is paired (best-effort)
  5. Initialize feature stores in order, seeded with step 4's snapshot
  6. Settle, then signal success

Any exception outside step 4 moves the sequencer to FAILED and records the
error message plus a serialized form for diagnostics. There is no retry
loop: a new attempt needs a new sequencer (i.e. a new app run).
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from core.api_clients import ApiClientRegistry
from core.config import TIMINGS, network_name
from core.diagnostics import DiagnosticLog
from core.errors import BootstrapAlreadyStartedError, IdentityGenerationError, serialize_error
from core.identity import IdentityProvider
from core.signals import SignalBus, BOOTSTRAP_SUCCEEDED, BOOTSTRAP_FAILED
from core.store import TokenStore
from core.subsystems import SubsystemInitializer
from core.user_data import UserDataFetcher

logger = logging.getLogger("walletd.bootstrap")


class BootstrapOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BootstrapState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BootstrapSequencer:

    def __init__(
        self,
        identities: IdentityProvider,
        registry: ApiClientRegistry,
        fetcher: UserDataFetcher,
        initializer: SubsystemInitializer,
        tokens: TokenStore,
        signals: SignalBus,
        log: DiagnosticLog,
        settle_seconds: float = TIMINGS.BOOTSTRAP_SETTLE_SECONDS,
    ):
        self._identities = identities
        self._registry = registry
        self._fetcher = fetcher
        self._initializer = initializer
        self._tokens = tokens
        self._signals = signals
        self._log = log
        self._settle_seconds = settle_seconds

        self.state = BootstrapState.IDLE
        self.network: Optional[str] = None
        self.last_error: str = ""
        self.last_error_detail: str = ""
        self.started_at: float = 0.0
        self.finished_at: float = 0.0

    @property
    def outcome(self) -> BootstrapOutcome:
        if self.state == BootstrapState.SUCCEEDED:
            return BootstrapOutcome.SUCCEEDED
        if self.state == BootstrapState.FAILED:
            return BootstrapOutcome.FAILED
        return BootstrapOutcome.PENDING

    async def run(self, network: str) -> BootstrapOutcome:
        if self.state != BootstrapState.IDLE:
            raise BootstrapAlreadyStartedError(
                f"Bootstrap already {self.state.value}; start a new sequencer to retry"
            )

        self.state = BootstrapState.RUNNING
        self.network = network_name(network)
        self.started_at = time.time()

        try:
            self._log.clear()
            self._log.info("Initializing app...")

            token = self._tokens.get_token(network)

            identity = await self._identities.ensure_identity(network)
            if identity is None:
                raise IdentityGenerationError(self.network)

            self._registry.configure(network, identity)

            snapshot = None
            if token:
                snapshot = await self._fetcher.fetch_if_paired(network, token)

            await self._initializer.init_all(network, snapshot)

            await asyncio.sleep(self._settle_seconds)

            self.state = BootstrapState.SUCCEEDED
            self.finished_at = time.time()
            self._log.info("Initialized app successfully.")
            await self._signals.emit(BOOTSTRAP_SUCCEEDED, {"network": self.network})

        except Exception as e:
            self.state = BootstrapState.FAILED
            self.finished_at = time.time()
            self.last_error = str(e)
            self.last_error_detail = serialize_error(e)
            logger.error(f"Bootstrap failed on {self.network}: {e}", exc_info=True)
            self._log.error("Failed to initialize app.")
            self._log.error(self.last_error_detail)
            await self._signals.emit(BOOTSTRAP_FAILED, {
                "network": self.network,
                "error": self.last_error,
            })

        return self.outcome

    def get_status(self) -> dict:
        """Status for the API surface."""
        return {
            "state": self.state.value,
            "outcome": self.outcome.value,
            "network": self.network,
            "error": self.last_error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }
