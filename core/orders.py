"""
Gift Card Orders — purchase lifecycle from invoice to redeemed card.

Lifecycle:
  CREATED → UNREDEEMED → {PENDING, SUCCESS, FAILURE}

1. create_invoice() — ask the backend for an invoice (privileged RPC when
   the user syncs purchases, public endpoint otherwise), look the invoice
   up, persist the order as UNREDEEMED
2. redeem() — exchange the paid invoice for card credentials; the
   response is merged into the stored order

The redemption endpoint does not tell "still processing" from "failed" by
status code, only by free-text message. classify_redemption_error() owns
that mapping; wording it does not know degrades to FAILURE.

Ownership: orders are created and mutated only here. Callers look them up
by invoice id.
"""

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from core.api_clients import ApiClientRegistry
from core.config import network_name
from core.errors import OrderCreationError, OrderNotFoundError, TransportError
from core.progress import ProgressSignal
from core.signals import SignalBus, ORDER_CREATED, ORDER_CREATION_FAILED, ORDER_REDEEMED
from core.store import JsonStore

logger = logging.getLogger("walletd.orders")


# ============================================================
# DATA TYPES
# ============================================================

class OrderStatus(str, Enum):
    """Values match the backend's wire format."""
    CREATED = "CREATED"
    UNREDEEMED = "UNREDEEMED"
    PENDING = "PENDING"             # Redemption not ready yet, retry later
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


REDEMPTION_OUTCOMES = (OrderStatus.PENDING, OrderStatus.SUCCESS, OrderStatus.FAILURE)

# Upstream wording that means "paid, but the card is not ready yet"
PENDING_REDEMPTION_PHRASES = (
    "Card creation delayed",
    "Invoice is unpaid or payment has not confirmed",
    "Please wait",
)

# Order fields a redemption response may never overwrite
_IMMUTABLE_FIELDS = ("invoiceId", "accessKey", "clientId")


def classify_redemption_error(message: Optional[str]) -> OrderStatus:
    """PENDING if the error message says the card is still processing, else FAILURE."""
    if not message:
        return OrderStatus.FAILURE
    if any(phrase in message for phrase in PENDING_REDEMPTION_PHRASES):
        return OrderStatus.PENDING
    return OrderStatus.FAILURE


@dataclass
class CardConfig:
    """Product configuration from the catalog."""
    name: str
    currency: str = "USD"
    email_required: bool = False
    phone_required: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "CardConfig":
        return cls(
            name=data.get("name", ""),
            currency=data.get("currency", "USD"),
            email_required=bool(data.get("emailRequired", False)),
            phone_required=bool(data.get("phoneRequired", False)),
        )


@dataclass
class InvoiceParams:
    brand: str
    client_id: str
    amount: float
    currency: str
    discounts: list[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {
            "brand": self.brand,
            "clientId": self.client_id,
            "amount": self.amount,
            "currency": self.currency,
        }
        if self.discounts:
            payload["discounts"] = list(self.discounts)
        return payload


@dataclass
class ShopperContext:
    """
    Who is buying. Passed explicitly on every call.

    sync_purchases only takes effect with a pairing token; without one the
    public payment path is used.
    """
    token: Optional[str] = None
    sync_purchases: bool = False
    user_email: Optional[str] = None    # Email of the paired account
    user_eid: Optional[str] = None
    email: Optional[str] = None         # Email typed in at checkout
    phone: Optional[str] = None

    @property
    def syncs_purchases(self) -> bool:
        return self.sync_purchases and bool(self.token)


@dataclass
class GiftCardOrder:
    invoice_id: str
    access_key: str
    client_id: str
    currency: str
    amount: float
    total_discount: float
    invoice: dict
    created_at: float
    status: OrderStatus = OrderStatus.UNREDEEMED
    name: str = ""
    user_eid: Optional[str] = None
    # Redemption payload (claim code, pin, barcode...). NEVER exposed by default in to_dict().
    redemption: dict = field(default_factory=dict)
    updated_at: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.SUCCESS, OrderStatus.FAILURE)

    def to_record(self) -> dict:
        """Full persisted form."""
        return {
            "invoiceId": self.invoice_id,
            "accessKey": self.access_key,
            "clientId": self.client_id,
            "currency": self.currency,
            "amount": self.amount,
            "totalDiscount": self.total_discount,
            "invoice": self.invoice,
            "createdAt": self.created_at,
            "status": self.status.value,
            "name": self.name,
            "userEid": self.user_eid,
            "redemption": self.redemption,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict) -> "GiftCardOrder":
        return cls(
            invoice_id=record["invoiceId"],
            access_key=record["accessKey"],
            client_id=record.get("clientId", ""),
            currency=record.get("currency", ""),
            amount=record.get("amount", 0),
            total_discount=record.get("totalDiscount", 0),
            invoice=record.get("invoice") or {},
            created_at=record.get("createdAt", 0.0),
            status=OrderStatus(record.get("status", OrderStatus.UNREDEEMED.value)),
            name=record.get("name", ""),
            user_eid=record.get("userEid"),
            redemption=record.get("redemption") or {},
            updated_at=record.get("updatedAt", 0.0),
        )

    def to_dict(self, include_redemption: bool = False) -> dict:
        """
        Serialize for API responses.

        The access key is never returned. Redemption data (card number, pin)
        only when explicitly requested.
        """
        data = {
            "invoice_id": self.invoice_id,
            "name": self.name,
            "client_id": self.client_id,
            "currency": self.currency,
            "amount": self.amount,
            "total_discount": self.total_discount,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "invoice_status": self.invoice.get("status", ""),
            "invoice_url": self.invoice.get("url", ""),
        }
        if include_redemption:
            data["redemption"] = dict(self.redemption)
        return data


# ============================================================
# ORDER STORE - per-network list persisted via JsonStore
# ============================================================

class OrderStore:

    KEY = "gift_cards"

    def __init__(self, store: JsonStore):
        self._store = store

    def list(self, network: str) -> list[GiftCardOrder]:
        return [GiftCardOrder.from_record(r) for r in self._store.get(self.KEY, network, [])]

    def get(self, network: str, invoice_id: str) -> Optional[GiftCardOrder]:
        for record in self._store.get(self.KEY, network, []):
            if record.get("invoiceId") == invoice_id:
                return GiftCardOrder.from_record(record)
        return None

    def insert(self, network: str, order: GiftCardOrder):
        records = self._store.get(self.KEY, network, [])
        records = [r for r in records if r.get("invoiceId") != order.invoice_id]
        records.append(order.to_record())
        self._store.set(self.KEY, network, records)

    def update(self, network: str, order: GiftCardOrder):
        records = self._store.get(self.KEY, network, [])
        for i, record in enumerate(records):
            if record.get("invoiceId") == order.invoice_id:
                records[i] = order.to_record()
                self._store.set(self.KEY, network, records)
                return
        raise OrderNotFoundError(order.invoice_id)


# ============================================================
# ORDER LIFECYCLE MANAGER
# ============================================================

def build_invoice_payload(
    card_config: CardConfig, params: InvoiceParams, shopper: ShopperContext
) -> dict:
    """Request body for invoice creation, with contact details only where the product needs them."""
    payload = params.to_payload()

    if card_config.email_required:
        email = shopper.user_email if shopper.syncs_purchases else shopper.email
        if email:
            payload["email"] = email

    if card_config.phone_required and shopper.phone:
        payload["phone"] = shopper.phone

    return payload


class OrderLifecycleManager:

    def __init__(
        self,
        registry: ApiClientRegistry,
        store: OrderStore,
        signals: SignalBus,
        progress: Optional[ProgressSignal] = None,
    ):
        self._registry = registry
        self._store = store
        self._signals = signals
        self._progress = progress
        # Entries vanish once no redeem() holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, network: str, invoice_id: str) -> asyncio.Lock:
        key = (network_name(network), invoice_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ----------------------------------------------------------
    # CREATION
    # ----------------------------------------------------------

    async def create_invoice(
        self,
        network: str,
        card_config: CardConfig,
        params: InvoiceParams,
        shopper: ShopperContext,
    ) -> GiftCardOrder:
        """
        Create an invoice and persist the order as UNREDEEMED.

        Raises OrderCreationError on any failure; nothing is persisted then.
        """
        if self._progress:
            await self._progress.show("Creating invoice...")
        try:
            order = await self._create_invoice(network, card_config, params, shopper)
        except Exception as e:
            logger.error(f"Gift card invoice creation failed ({params.brand}): {e}")
            await self._signals.emit(ORDER_CREATION_FAILED, {
                "network": network_name(network),
                "brand": params.brand,
                "error": str(e),
            })
            if isinstance(e, OrderCreationError):
                raise
            raise OrderCreationError(f"Failed to create gift card invoice: {e}") from e
        finally:
            if self._progress:
                await self._progress.dismiss()

        await self._signals.emit(ORDER_CREATED, order.to_dict())
        return order

    async def _create_invoice(
        self,
        network: str,
        card_config: CardConfig,
        params: InvoiceParams,
        shopper: ShopperContext,
    ) -> GiftCardOrder:
        rest = self._registry.rest(network)
        payload = build_invoice_payload(card_config, params, shopper)

        if shopper.syncs_purchases:
            body = await rest.request("createGiftCardInvoice", shopper.token, payload)
            if not isinstance(body, dict):
                raise OrderCreationError("Malformed createGiftCardInvoice response")
            if body.get("error"):
                raise OrderCreationError(str(body["error"]))
            card_order = body.get("data")
        else:
            card_order = await rest.post("/gift-cards/pay", payload)

        if not isinstance(card_order, dict) or not card_order.get("invoiceId") or not card_order.get("accessKey"):
            raise OrderCreationError("Invoice response is missing invoiceId/accessKey")

        invoice_id = card_order["invoiceId"]
        invoice_body = await rest.get(f"/invoices/{invoice_id}")
        invoice = invoice_body.get("data") if isinstance(invoice_body, dict) else None
        if not isinstance(invoice, dict):
            raise OrderCreationError(f"Invoice lookup for {invoice_id} returned no invoice")

        now = time.time()
        order = GiftCardOrder(
            invoice_id=invoice_id,
            access_key=card_order["accessKey"],
            client_id=params.client_id,
            currency=params.currency,
            amount=params.amount,
            total_discount=card_order.get("totalDiscount", 0),
            invoice=invoice,
            created_at=now,
            status=OrderStatus.UNREDEEMED,
            name=params.brand,
            user_eid=shopper.user_eid,
            updated_at=now,
        )
        self._store.insert(network, order)

        logger.info(
            f"Gift card order created: {order.name} {order.amount} {order.currency} "
            f"invoice={invoice_id} ({'synced' if shopper.syncs_purchases else 'public'})"
        )
        return order

    # ----------------------------------------------------------
    # REDEMPTION
    # ----------------------------------------------------------

    async def redeem(self, network: str, invoice_id: str) -> GiftCardOrder:
        """
        Attempt redemption and store the result.

        Transport errors are reclassified into PENDING / FAILURE and never
        raised. Raises OrderNotFoundError if no order matches.
        """
        async with self._lock_for(network, invoice_id):
            order = self._store.get(network, invoice_id)
            if order is None:
                raise OrderNotFoundError(invoice_id)

            if order.status == OrderStatus.SUCCESS:
                logger.info(f"Gift card {invoice_id} already redeemed")
                return order
            if order.status == OrderStatus.FAILURE:
                logger.warning(f"Retrying redemption of failed gift card {invoice_id}")

            rest = self._registry.rest(network)
            try:
                response = await rest.post("/gift-cards/redeem", {
                    "accessKey": order.access_key,
                    "clientId": order.client_id,
                    "invoiceId": order.invoice_id,
                })
                if not isinstance(response, dict):
                    response = {}
            except TransportError as e:
                status = classify_redemption_error(e.server_message)
                logger.info(
                    f"Gift card {invoice_id} redemption error "
                    f"({e.status}: {e.server_message or e}) → {status.value}"
                )
                response = {"status": status.value}

            self._apply_redemption(order, response)
            self._store.update(network, order)

        logger.info(f"Gift card {invoice_id} redemption status: {order.status.value}")
        await self._signals.emit(ORDER_REDEEMED, order.to_dict())
        return order

    def _apply_redemption(self, order: GiftCardOrder, response: dict):
        raw_status = response.get("status")
        if not raw_status:
            status = OrderStatus.SUCCESS
        else:
            try:
                status = OrderStatus(str(raw_status).upper())
            except ValueError:
                status = None
            if status not in REDEMPTION_OUTCOMES:
                logger.warning(
                    f"Unexpected redemption status {raw_status!r} for {order.invoice_id} — keeping PENDING"
                )
                status = OrderStatus.PENDING

        extra = {
            k: v for k, v in response.items()
            if k != "status" and k not in _IMMUTABLE_FIELDS
        }
        order.redemption.update(extra)
        order.status = status
        order.updated_at = time.time()

    # ----------------------------------------------------------
    # QUERIES
    # ----------------------------------------------------------

    def get_order(self, network: str, invoice_id: str) -> Optional[GiftCardOrder]:
        return self._store.get(network, invoice_id)

    def list_orders(self, network: str) -> list[GiftCardOrder]:
        return sorted(self._store.list(network), key=lambda o: o.created_at, reverse=True)

    def get_unredeemed_orders(self, network: str) -> list[GiftCardOrder]:
        """Orders a later redeem() may still complete."""
        return [
            o for o in self.list_orders(network)
            if o.status in (OrderStatus.UNREDEEMED, OrderStatus.PENDING)
        ]
