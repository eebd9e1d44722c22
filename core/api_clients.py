"""
API Clients — transport plus the named clients bound to a network + identity.

Layers:
- HttpTransport: one aiohttp session, JSON in / JSON out, every failure
  surfaces as TransportError (URL, status, body, request payload)
- RestClient: signed JSON-RPC calls (privileged, token-bound) and plain
  REST calls against the network's base URL
- GraphQlClient: signed GraphQL queries (user data)
- ApiClientRegistry: configure(network, identity) binds all named clients;
  a prerequisite for every network call

Request signing: x-identity carries the public id, x-signature an EIP-191
signature of (url + body) made with the identity's private key.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import aiohttp
from eth_account import Account
from eth_account.messages import encode_defunct

from core.config import TIMINGS, get_base_url, network_name
from core.errors import TransportError, WalletError
from core.identity import Identity

logger = logging.getLogger("walletd.api")


# ============================================================
# TRANSPORT
# ============================================================

class HttpTransport:
    """Thin aiohttp wrapper. Lazily creates (and re-creates) its session."""

    def __init__(self, timeout_seconds: float = TIMINGS.HTTP_TIMEOUT_SECONDS):
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._session

    async def request_json(
        self,
        method: str,
        url: str,
        payload: Any = None,
        headers: Optional[dict] = None,
    ) -> Any:
        session = await self._get_session()
        try:
            async with session.request(method, url, json=payload, headers=headers) as resp:
                raw = await resp.read()
                text = raw.decode("utf-8", errors="replace")
                try:
                    body = json.loads(text) if text else None
                except json.JSONDecodeError:
                    body = text

                if resp.status >= 400:
                    raise TransportError(
                        f"Request failed with status code {resp.status}",
                        url=url, status=resp.status, body=body, payload=payload,
                    )
                return body

        except aiohttp.ClientError as e:
            raise TransportError(
                f"{type(e).__name__}: {e}", url=url, payload=payload,
            ) from e
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Request timed out after {self._timeout.total}s", url=url, payload=payload,
            ) from e

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()


def sign_request(identity: Identity, url: str, body: str = "") -> dict[str, str]:
    """Identity headers for a signed request."""
    message = encode_defunct(text=url + body)
    signed = Account.sign_message(message, private_key=identity.private_key)
    return {
        "x-identity": identity.public_id,
        "x-signature": signed.signature.hex(),
    }


# ============================================================
# CLIENTS
# ============================================================

class RestClient:
    """Signed RPC + plain REST against one network's backend."""

    name = "rest"

    def __init__(self, transport: HttpTransport, network: str, identity: Identity):
        self._transport = transport
        self.network = network
        self.identity = identity
        self.base_url = get_base_url(network)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(self, method: str, token: str, params: Optional[dict] = None) -> Any:
        """
        Privileged JSON-RPC call bound to a pairing token.

        Returns the decoded response body ({"data": ...} or {"error": ...}).
        Application-level errors are left to the caller to interpret.
        """
        url = self.url("/api/v2/")
        payload = {
            "method": method,
            "params": json.dumps(params or {}),
            "token": token,
        }
        headers = sign_request(self.identity, url, json.dumps(payload))
        logger.debug(f"RPC {method} → {url}")
        return await self._transport.request_json("POST", url, payload, headers=headers)

    async def get(self, path: str) -> Any:
        return await self._transport.request_json("GET", self.url(path))

    async def post(self, path: str, payload: dict) -> Any:
        return await self._transport.request_json("POST", self.url(path), payload)


class GraphQlClient:
    """Signed GraphQL queries. GraphQL `errors` are raised as TransportError."""

    name = "graphql"

    def __init__(self, transport: HttpTransport, network: str, identity: Identity):
        self._transport = transport
        self.network = network
        self.identity = identity
        self.endpoint = f"{get_base_url(network)}/api/v2/graphql"

    async def query(self, token: str, query: str, variables: Optional[dict] = None) -> dict:
        payload = {"token": token, "query": query, "variables": variables or {}}
        headers = sign_request(self.identity, self.endpoint, json.dumps(payload))
        body = await self._transport.request_json("POST", self.endpoint, payload, headers=headers)

        if not isinstance(body, dict):
            raise TransportError(
                "Malformed GraphQL response", url=self.endpoint, body=body, payload=payload,
            )
        errors = body.get("errors")
        if errors:
            first = errors[0].get("message", "unknown error") if isinstance(errors[0], dict) else str(errors[0])
            raise TransportError(
                f"GraphQL error: {first}",
                url=self.endpoint, body=body, payload=payload,
            )
        return body.get("data") or {}


# ============================================================
# REGISTRY
# ============================================================

ClientFactory = Callable[[HttpTransport, str, Identity], Any]

DEFAULT_CLIENTS: dict[str, ClientFactory] = {
    RestClient.name: RestClient,
    GraphQlClient.name: GraphQlClient,
}


class ApiClientRegistry:
    """
    Named clients per network.

    configure() replaces the network's clients; calling it again with the
    same identity keeps the existing ones.
    """

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        factories: Optional[dict[str, ClientFactory]] = None,
    ):
        self._transport = transport or HttpTransport()
        self._factories = dict(factories or DEFAULT_CLIENTS)
        self._clients: dict[str, dict[str, Any]] = {}   # network → name → client
        self._identities: dict[str, Identity] = {}      # network → bound identity

    def is_configured(self, network: str) -> bool:
        return network_name(network) in self._identities

    def configure(self, network: str, identity: Identity) -> None:
        network = network_name(network)
        if self._identities.get(network) == identity:
            return
        self._clients[network] = {
            name: factory(self._transport, network, identity)
            for name, factory in self._factories.items()
        }
        self._identities[network] = identity
        logger.info(
            f"API clients configured for {network}: "
            f"{', '.join(self._clients[network])} (identity {identity.public_id[:10]}...)"
        )

    def get(self, name: str, network: str) -> Any:
        clients = self._clients.get(network_name(network), {})
        if name not in clients:
            raise WalletError(f"API client '{name}' is not configured for {network}")
        return clients[name]

    def rest(self, network: str) -> RestClient:
        return self.get(RestClient.name, network)

    def graphql(self, network: str) -> GraphQlClient:
        return self.get(GraphQlClient.name, network)

    async def close(self):
        await self._transport.close()
