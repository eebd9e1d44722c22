"""
Configuration — networks, endpoints and timing constants.

Immutable values live in frozen dataclasses. Everything deployment-specific
comes from the environment (.env is loaded by main.py before import).
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final


class Network(str, Enum):
    LIVENET = "livenet"
    TESTNET = "testnet"


# Base URL of the commerce / account backend per network
BASE_URLS: dict[Network, str] = {
    Network.LIVENET: os.getenv("WALLETD_LIVENET_URL", "https://bitpay.com"),
    Network.TESTNET: os.getenv("WALLETD_TESTNET_URL", "https://test.bitpay.com"),
}


def get_base_url(network: Network) -> str:
    """Return the backend base URL for a network (no trailing slash)."""
    return BASE_URLS[Network(network)].rstrip("/")


# ============================================================
# TIMINGS - fixed delays used by the orchestration flows
# ============================================================

@dataclass(frozen=True)
class Timings:
    """Frozen dataclass = constant at runtime."""

    # --- PROGRESS SIGNAL ---
    PROGRESS_DISMISS_SETTLE_SECONDS: Final[float] = 0.5   # Exit animation of a previous indicator
    PROGRESS_SHOW_SETTLE_SECONDS: Final[float] = 0.1      # Entrance animation before the next call

    # --- BOOTSTRAP ---
    BOOTSTRAP_SETTLE_SECONDS: Final[float] = 0.5          # Pause before signalling success

    # --- HTTP ---
    HTTP_TIMEOUT_SECONDS: Final[float] = 30.0


TIMINGS = Timings()


# ============================================================
# SETTINGS - per-process values from the environment
# ============================================================

@dataclass
class Settings:
    network: Network = Network.LIVENET
    data_dir: Path = Path("data")
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    country: str = "US"


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    raw_network = os.getenv("WALLETD_NETWORK", Network.LIVENET.value).lower()
    try:
        network = Network(raw_network)
    except ValueError:
        raise ValueError(
            f"Unsupported WALLETD_NETWORK: {raw_network} "
            f"(expected one of {[n.value for n in Network]})"
        )

    return Settings(
        network=network,
        data_dir=Path(os.getenv("WALLETD_DATA_DIR", "data")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
        country=os.getenv("WALLETD_COUNTRY", "US").upper(),
    )


def network_name(network) -> str:
    """Canonical string key for a network (accepts Network or its value)."""
    return Network(network).value
