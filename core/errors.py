"""
Error taxonomy for the bootstrap and order flows.

Best-effort boundaries (user-data refresh, redemption transport) catch and
reclassify; every other error propagates to the sequencing component.
"""

import json
from typing import Any, Optional


class WalletError(Exception):
    """Base class for all walletd errors."""
    pass


class IdentityGenerationError(WalletError):
    """No usable app identity could be produced for a network."""

    def __init__(self, network: str, message: str = ""):
        super().__init__(message or f"No app identity available for {network}")
        self.network = network


class UserDataFetchError(WalletError):
    """Remote user-data refresh failed. Never escapes UserDataFetcher."""
    pass


class SubsystemInitError(WalletError):
    """A feature store failed to initialize. Fatal to bootstrap."""

    def __init__(self, subsystem: str, message: str):
        super().__init__(f"{subsystem}: {message}")
        self.subsystem = subsystem


class OrderCreationError(WalletError):
    """Invoice creation or invoice lookup failed; nothing was persisted."""
    pass


class OrderNotFoundError(WalletError):
    """No stored order for the given invoice id."""

    def __init__(self, invoice_id: str):
        super().__init__(f"No gift card order for invoice {invoice_id}")
        self.invoice_id = invoice_id


class BootstrapAlreadyStartedError(WalletError):
    """A sequencer runs at most once; a new attempt needs a new instance."""
    pass


class TransportError(WalletError):
    """
    HTTP-level failure: connection error, timeout or non-2xx response.

    Carries the request URL and payload plus the response body so callers
    can log the failing request and read the server's message.
    """

    def __init__(
        self,
        message: str,
        url: str = "",
        status: Optional[int] = None,
        body: Any = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.url = url
        self.status = status
        self.body = body
        self.payload = payload

    @property
    def server_message(self) -> Optional[str]:
        """The `message` field of a JSON error body, if the server sent one."""
        if isinstance(self.body, dict):
            msg = self.body.get("message")
            return msg if isinstance(msg, str) else None
        return None


def serialize_error(err: BaseException) -> str:
    """JSON snapshot of an exception for the diagnostic log."""
    data: dict[str, Any] = {
        "type": type(err).__name__,
        "message": str(err),
    }
    for attr in ("url", "status", "body", "payload", "network", "subsystem", "invoice_id"):
        if hasattr(err, attr):
            data[attr] = getattr(err, attr)
    if err.__cause__ is not None:
        data["cause"] = f"{type(err.__cause__).__name__}: {err.__cause__}"
    return json.dumps(data, default=str)
