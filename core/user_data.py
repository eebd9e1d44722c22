"""
User Data Refresh — best-effort fetch of the paired user's profile and cards.

This is a best-effort boundary: any failure is logged with enough detail to
tell a transport failure (URL + request payload) from anything else, and the
caller gets None. Bootstrap always continues.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from core.api_clients import ApiClientRegistry
from core.diagnostics import DiagnosticLog
from core.errors import TransportError, UserDataFetchError

logger = logging.getLogger("walletd.user_data")


FETCH_ALL_USER_DATA = """
query FETCH_ALL_USER_DATA($token: String!) {
  user: bitpayUser(token: $token) {
    basicInfo: user {
      eid
      email
      givenName
      familyName
      incentiveLevelId
    }
    cards: debitCards {
      id
      token
      brand
      cardType
      currency { code }
      lastFourDigits
      status
    }
  }
}
"""


@dataclass
class UserSnapshot:
    profile: Optional[dict] = None
    cards: list[dict] = field(default_factory=list)


def _redact(payload):
    """Request payload with credentials masked (nested dicts included)."""
    if not isinstance(payload, dict):
        return payload if payload is not None else {}
    return {
        k: ("***" if k == "token" else _redact(v) if isinstance(v, dict) else v)
        for k, v in payload.items()
    }


class UserDataFetcher:

    def __init__(self, registry: ApiClientRegistry, log: DiagnosticLog):
        self._registry = registry
        self._log = log

    async def fetch_if_paired(self, network: str, token: Optional[str]) -> Optional[UserSnapshot]:
        if not token:
            return None

        try:
            self._log.info("App is paired, refreshing user data...")
            data = await self._registry.graphql(network).query(
                token, FETCH_ALL_USER_DATA, {"token": token},
            )
            user = data.get("user")
            if not isinstance(user, dict):
                raise UserDataFetchError("user data response has no user")

            return UserSnapshot(
                profile=user.get("basicInfo"),
                cards=list(user.get("cards") or []),
            )

        except TransportError as e:
            self._log.error(
                f"{type(e).__name__}: {e}",
                url=e.url,
                payload=json.dumps(_redact(e.payload), default=str),
            )
        except Exception as e:
            self._log.error(f"{type(e).__name__}: {e}")

        self._log.info("Failed to refresh user data. Continuing initialization.")
        return None
