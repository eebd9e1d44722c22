"""
walletd - main entry point

Initializes all modules, wires them together, runs the bootstrap sequence
at startup and serves the API.

Usage:
    python main.py              # Start walletd
    WALLETD_NETWORK=testnet python main.py
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()

from core.config import load_settings  # noqa: E402  (reads env after load_dotenv)

settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class _SecretMaskingFilter(logging.Filter):
    """Redact 64-char hex strings (identity private keys) from all log output."""
    _PATTERN = re.compile(r'(?<![0-9a-fA-F])(?:0x)?([0-9a-fA-F]{64})(?![0-9a-fA-F])')

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = self._PATTERN.sub('[REDACTED]', record.msg)
        if record.args:
            try:
                formatted = record.getMessage()
            except (TypeError, ValueError):
                return True
            if self._PATTERN.search(formatted):
                record.msg = self._PATTERN.sub('[REDACTED]', formatted)
                record.args = None
        return True


_mask_filter = _SecretMaskingFilter()
for _h in logging.root.handlers:
    _h.addFilter(_mask_filter)

logger = logging.getLogger("walletd.main")


# ============================================================
# MODULE IMPORTS
# ============================================================

from core.api_clients import ApiClientRegistry  # noqa: E402
from core.bootstrap import BootstrapSequencer  # noqa: E402
from core.diagnostics import DiagnosticLog  # noqa: E402
from core.identity import IdentityProvider  # noqa: E402
from core.orders import OrderLifecycleManager, OrderStore  # noqa: E402
from core.progress import ProgressSignal  # noqa: E402
from core.shop import ShopCatalogService  # noqa: E402
from core.signals import SignalBus, BOOTSTRAP_FAILED, ORDER_REDEEMED  # noqa: E402
from core.store import JsonStore, TokenStore  # noqa: E402
from core.subsystems import AccountStore, CardStore, SubsystemInitializer, WalletStore  # noqa: E402
from core.user_data import UserDataFetcher  # noqa: E402
from api.server import create_app  # noqa: E402


# ============================================================
# GLOBALS (singleton instances)
# ============================================================

store = JsonStore(settings.data_dir)
signals = SignalBus()
diagnostics = DiagnosticLog()
tokens = TokenStore(store)
registry = ApiClientRegistry()
identities = IdentityProvider(store, signals, diagnostics)
fetcher = UserDataFetcher(registry, diagnostics)
wallet_store = WalletStore(store)
account_store = AccountStore(store)
card_store = CardStore()
initializer = SubsystemInitializer(wallet_store, account_store, card_store, diagnostics)
progress = ProgressSignal(signals)
order_manager = OrderLifecycleManager(registry, OrderStore(store), signals, progress)
catalog_service = ShopCatalogService(registry, signals)

# One sequencer per app run (created in lifespan)
_sequencer: Optional[BootstrapSequencer] = None


def _bootstrap_status() -> dict:
    if _sequencer is None:
        return {"state": "idle", "outcome": "pending", "network": settings.network.value}
    return _sequencer.get_status()


def _on_bootstrap_failed(payload: dict):
    logger.critical(f"Bootstrap FAILED: {payload.get('error')} — order endpoints will be unavailable")


def _on_order_redeemed(order: dict):
    logger.info(f"Order {order['invoice_id']} → {order['status']}")


# ============================================================
# LIFESPAN
# ============================================================

@asynccontextmanager
async def lifespan(app):
    """Startup and shutdown."""
    global _sequencer

    logger.info("=" * 60)
    logger.info(f"walletd starting on {settings.network.value}")
    logger.info("=" * 60)

    signals.subscribe(BOOTSTRAP_FAILED, _on_bootstrap_failed)
    signals.subscribe(ORDER_REDEEMED, _on_order_redeemed)

    _sequencer = BootstrapSequencer(
        identities, registry, fetcher, initializer, tokens, signals, diagnostics,
    )
    outcome = await _sequencer.run(settings.network)
    logger.info(f"Bootstrap outcome: {outcome.value}")

    yield

    await registry.close()
    logger.info("walletd stopped")


def create_walletd_app():
    app = create_app(
        network=settings.network.value,
        order_manager=order_manager,
        catalog_service=catalog_service,
        tokens=tokens,
        account_store=account_store,
        diagnostics=diagnostics,
        bootstrap_status_fn=_bootstrap_status,
        country=settings.country,
        cors_origins=settings.cors_origins,
    )

    # Replace the default lifespan with ours
    app.router.lifespan_context = lifespan

    return app


# ============================================================
# ENTRY POINT
# ============================================================

app = create_walletd_app()

if __name__ == "__main__":
    logger.info(f"Starting server on {settings.host}:{settings.port}")

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
