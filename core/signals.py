"""
Signal Bus — out-of-band notifications for UI consumers.

Flows emit named signals (bootstrap outcome, order state changes, progress
show/dismiss) instead of returning them. Handlers may be sync or async.
A failing handler is logged and never breaks the emitting flow.
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger("walletd.signals")

# Signal names
BOOTSTRAP_SUCCEEDED = "bootstrap.succeeded"
BOOTSTRAP_FAILED = "bootstrap.failed"
IDENTITY_GENERATED = "identity.generated"
IDENTITY_FAILED = "identity.failed"
ORDER_CREATED = "order.created"
ORDER_CREATION_FAILED = "order.creation_failed"
ORDER_REDEEMED = "order.redeemed"
PROGRESS_SHOW = "progress.show"
PROGRESS_DISMISS = "progress.dismiss"
CATALOG_FETCHED = "shop.catalog_fetched"
CATALOG_FAILED = "shop.catalog_failed"


class SignalBus:
    """Minimal pub/sub keyed by signal name."""

    def __init__(self):
        self._handlers: dict[str, list[Callable]] = defaultdict(list)
        # (name, payload) of every emitted signal, newest last
        self.history: list[tuple[str, Any]] = []
        self._max_history = 200

    def subscribe(self, name: str, handler: Callable):
        self._handlers[name].append(handler)

    def unsubscribe(self, name: str, handler: Callable):
        if handler in self._handlers.get(name, []):
            self._handlers[name].remove(handler)

    async def emit(self, name: str, payload: Any = None):
        self.history.append((name, payload))
        if len(self.history) > self._max_history:
            self.history = self.history[-self._max_history:]

        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Signal handler for {name} failed: {e}")

    def emitted(self, name: str) -> list[Any]:
        """Payloads of every emission of `name`, oldest first."""
        return [p for n, p in self.history if n == name]
