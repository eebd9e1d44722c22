"""
walletd API Server - FastAPI surface over the orchestration core

Endpoints:
- GET  /health                      Liveness
- GET  /status                      Bootstrap state + recent diagnostics
- GET  /catalog                     Gift card catalog (optional ?merchant= deeplink lookup)
- GET  /orders                      Gift card orders (no redemption secrets)
- GET  /orders/{invoice_id}         One order, including redemption data
- POST /orders                      Create invoice → UNREDEEMED order
- POST /orders/{invoice_id}/redeem  Attempt redemption → PENDING / SUCCESS / FAILURE

The server only reads and forwards; all state transitions happen in core/.
"""

import logging
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from core.diagnostics import DiagnosticLog
from core.errors import OrderCreationError, OrderNotFoundError, WalletError
from core.orders import CardConfig, InvoiceParams, OrderLifecycleManager, ShopperContext
from core.shop import ShopCatalogService
from core.store import TokenStore
from core.subsystems import AccountStore

logger = logging.getLogger("walletd.api.server")


# ============================================================
# MODELS
# ============================================================

class CardConfigModel(BaseModel):
    name: str = Field(..., max_length=200)
    currency: str = Field("USD", max_length=10)
    email_required: bool = False
    phone_required: bool = False


class CreateOrderRequest(BaseModel):
    card: CardConfigModel
    client_id: str = Field(..., max_length=200)
    amount: float = Field(..., gt=0, le=100000)
    currency: str = Field(..., max_length=10)
    discounts: list[str] = Field(default_factory=list)
    sync_purchases: bool = False
    email: Optional[str] = Field(None, max_length=320)
    phone: Optional[str] = Field(None, max_length=40)


class OrderResponse(BaseModel):
    invoice_id: str
    name: str
    client_id: str
    currency: str
    amount: float
    total_discount: float
    status: str
    created_at: float
    updated_at: float
    invoice_status: str = ""
    invoice_url: str = ""
    redemption: Optional[dict] = None


class StatusResponse(BaseModel):
    state: str
    outcome: str
    network: Optional[str] = None
    error: str = ""
    started_at: float = 0.0
    finished_at: float = 0.0
    diagnostics: list[dict] = Field(default_factory=list)


# ============================================================
# SERVER FACTORY
# ============================================================

def create_app(
    network: str,
    order_manager: OrderLifecycleManager,
    catalog_service: ShopCatalogService,
    tokens: TokenStore,
    account_store: AccountStore,
    diagnostics: DiagnosticLog,
    bootstrap_status_fn: Callable[[], dict],
    country: str = "US",
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    """
    Create the FastAPI app wired to the core services.

    bootstrap_status_fn: returns the current sequencer's get_status() dict
    """
    app = FastAPI(
        title="walletd",
        description="Wallet bootstrap and gift card order service.",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _shopper(sync_purchases: bool, email: Optional[str], phone: Optional[str]) -> ShopperContext:
        user = account_store.get_user(network) or {}
        return ShopperContext(
            token=tokens.get_token(network),
            sync_purchases=sync_purchases,
            user_email=user.get("email"),
            user_eid=user.get("eid"),
            email=email,
            phone=phone,
        )

    # ============================================================
    # ROUTES
    # ============================================================

    @app.get("/health")
    async def health():
        return {"status": "ok", "network": network}

    @app.get("/status", response_model=StatusResponse)
    async def status():
        return StatusResponse(
            **bootstrap_status_fn(),
            diagnostics=diagnostics.recent(50),
        )

    @app.get("/catalog")
    async def catalog(merchant: Optional[str] = None, sync_purchases: bool = False):
        result = await catalog_service.fetch_catalog(
            network, country, account_store.get_user(network), sync_purchases,
        )
        if result is None:
            raise HTTPException(502, "Gift card catalog is unavailable")

        if merchant is not None:
            card = catalog_service.find_card(result, merchant)
            if card is None:
                raise HTTPException(404, f"No gift card for merchant: {merchant}")
            return {"card": card}

        return {
            "cards": result.available_cards(),
            "categories": result.categories_and_curations,
            "integrations": result.integrations,
        }

    @app.get("/orders", response_model=list[OrderResponse])
    async def list_orders():
        return [o.to_dict() for o in order_manager.list_orders(network)]

    @app.get("/orders/{invoice_id}", response_model=OrderResponse)
    async def get_order(invoice_id: str):
        order = order_manager.get_order(network, invoice_id)
        if order is None:
            raise HTTPException(404, f"No gift card order for invoice {invoice_id}")
        return order.to_dict(include_redemption=True)

    @app.post("/orders", response_model=OrderResponse)
    async def create_order(req: CreateOrderRequest):
        card_config = CardConfig(
            name=req.card.name,
            currency=req.card.currency,
            email_required=req.card.email_required,
            phone_required=req.card.phone_required,
        )
        params = InvoiceParams(
            brand=req.card.name,
            client_id=req.client_id,
            amount=req.amount,
            currency=req.currency,
            discounts=req.discounts,
        )
        try:
            order = await order_manager.create_invoice(
                network, card_config, params,
                _shopper(req.sync_purchases, req.email, req.phone),
            )
        except OrderCreationError as e:
            raise HTTPException(502, str(e))
        except WalletError as e:
            raise HTTPException(503, str(e))
        return order.to_dict()

    @app.post("/orders/{invoice_id}/redeem", response_model=OrderResponse)
    async def redeem_order(invoice_id: str):
        try:
            order = await order_manager.redeem(network, invoice_id)
        except OrderNotFoundError as e:
            raise HTTPException(404, str(e))
        except WalletError as e:
            raise HTTPException(503, str(e))
        return order.to_dict(include_redemption=True)

    return app
