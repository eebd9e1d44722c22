"""
Diagnostic Log — in-app trail of what the orchestration flows did.

Every entry is also forwarded to the standard logger, so the trail shows up
in process logs while staying queryable for the status endpoint.
"""

import logging
import time
from dataclasses import dataclass, field, asdict
from typing import Optional

logger = logging.getLogger("walletd.diagnostics")


@dataclass
class LogEntry:
    timestamp: float
    level: str                     # "info" or "error"
    message: str
    context: dict = field(default_factory=dict)


class DiagnosticLog:
    """Bounded in-memory log (oldest entries dropped first)."""

    def __init__(self, max_entries: int = 500):
        self.entries: list[LogEntry] = []
        self.max_entries = max_entries

    def clear(self):
        self.entries = []

    def info(self, message: str, **context):
        self._add("info", message, context)
        logger.info(message)

    def error(self, message: str, **context):
        self._add("error", message, context)
        if context:
            logger.error(f"{message} {context}")
        else:
            logger.error(message)

    def _add(self, level: str, message: str, context: dict):
        self.entries.append(LogEntry(
            timestamp=time.time(),
            level=level,
            message=message,
            context=context,
        ))
        if len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries:]

    def messages(self, level: Optional[str] = None) -> list[str]:
        return [e.message for e in self.entries if level is None or e.level == level]

    def recent(self, limit: int = 50) -> list[dict]:
        return [asdict(e) for e in self.entries[-limit:]]
