"""
Progress Signal — on/off "work in progress" indicator for long flows.

show() on an already visible indicator runs dismiss → settle → show →
settle, so chained progress-gated calls never produce overlapping
indicators. Calls are serialized with a lock; the two settle intervals are
constructor parameters.
"""

import asyncio
import logging
from typing import Optional

from core.config import TIMINGS
from core.signals import SignalBus, PROGRESS_SHOW, PROGRESS_DISMISS

logger = logging.getLogger("walletd.progress")


class ProgressSignal:

    def __init__(
        self,
        signals: SignalBus,
        dismiss_settle_seconds: float = TIMINGS.PROGRESS_DISMISS_SETTLE_SECONDS,
        show_settle_seconds: float = TIMINGS.PROGRESS_SHOW_SETTLE_SECONDS,
    ):
        self._signals = signals
        self.dismiss_settle_seconds = dismiss_settle_seconds
        self.show_settle_seconds = show_settle_seconds
        self.is_shown = False
        self.message: Optional[str] = None
        self._lock = asyncio.Lock()

    async def show(self, message: str):
        async with self._lock:
            if self.is_shown:
                await self._dismiss()
                await asyncio.sleep(self.dismiss_settle_seconds)

            self.is_shown = True
            self.message = message
            await self._signals.emit(PROGRESS_SHOW, message)
            await asyncio.sleep(self.show_settle_seconds)

    async def dismiss(self):
        async with self._lock:
            await self._dismiss()

    async def _dismiss(self):
        if not self.is_shown:
            return
        self.is_shown = False
        self.message = None
        await self._signals.emit(PROGRESS_DISMISS, None)
