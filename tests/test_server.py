"""HTTP surface — routes map onto the core services and hide secrets."""

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from core.errors import TransportError
from core.orders import OrderLifecycleManager, OrderStore
from core.shop import ShopCatalogService
from core.subsystems import AccountStore

from tests.fakes import NETWORK


@pytest.fixture
def account_store(store):
    accounts = AccountStore(store)
    accounts.users[NETWORK.value] = {"eid": "eid-1", "email": "paired@example.com"}
    return accounts


@pytest.fixture
def client(registry, store, signals, tokens, diagnostics, account_store):
    diagnostics.info("Initialized app successfully.")
    app = create_app(
        network=NETWORK.value,
        order_manager=OrderLifecycleManager(registry, OrderStore(store), signals),
        catalog_service=ShopCatalogService(registry, signals),
        tokens=tokens,
        account_store=account_store,
        diagnostics=diagnostics,
        bootstrap_status_fn=lambda: {"state": "succeeded", "outcome": "succeeded", "network": "livenet"},
    )
    return TestClient(app)


@pytest.fixture
def order_routes(rest):
    rest.routes[("POST", "/gift-cards/pay")] = {"invoiceId": "inv-7", "accessKey": "ak-hidden"}
    rest.routes[("GET", "/invoices/inv-7")] = {"data": {"status": "new", "url": "https://pay/inv-7"}}
    return rest


ORDER_BODY = {
    "card": {"name": "Amazon.com", "currency": "USD", "email_required": True},
    "client_id": "client-1",
    "amount": 50,
    "currency": "USD",
    "email": "typed@example.com",
}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "network": "livenet"}


def test_status_includes_diagnostics(client):
    body = client.get("/status").json()

    assert body["outcome"] == "succeeded"
    assert body["diagnostics"][-1]["message"] == "Initialized app successfully."


def test_create_and_redeem_order(client, order_routes):
    created = client.post("/orders", json=ORDER_BODY)

    assert created.status_code == 200
    assert created.json()["status"] == "UNREDEEMED"
    assert created.json()["invoice_url"] == "https://pay/inv-7"
    assert "ak-hidden" not in created.text
    assert order_routes.calls[0][2]["email"] == "typed@example.com"

    order_routes.routes[("POST", "/gift-cards/redeem")] = {"claimCode": "CODE-1"}
    redeemed = client.post("/orders/inv-7/redeem")

    assert redeemed.status_code == 200
    assert redeemed.json()["status"] == "SUCCESS"
    assert redeemed.json()["redemption"] == {"claimCode": "CODE-1"}

    listed = client.get("/orders").json()
    assert [o["invoice_id"] for o in listed] == ["inv-7"]
    assert listed[0]["redemption"] is None


def test_failed_creation_is_bad_gateway(client, rest):
    rest.routes[("POST", "/gift-cards/pay")] = TransportError("Request failed with status code 500", status=500)

    response = client.post("/orders", json=ORDER_BODY)

    assert response.status_code == 502
    assert client.get("/orders").json() == []


def test_unknown_order_is_not_found(client):
    assert client.get("/orders/missing").status_code == 404
    assert client.post("/orders/missing/redeem").status_code == 404


def test_invalid_amount_is_rejected(client):
    response = client.post("/orders", json={**ORDER_BODY, "amount": 0})

    assert response.status_code == 422


def test_catalog_merchant_lookup(client, rest):
    rest.routes[("GET", "/gift-cards/catalog/US")] = {"Amazon.com": [{"currency": "USD"}]}
    rest.routes[("GET", "/merchant-directory/directory")] = {}
    rest.routes[("GET", "/merchant-directory/integrations")] = []

    assert client.get("/catalog").json()["cards"] == [{"name": "Amazon.com", "currency": "USD"}]
    assert client.get("/catalog", params={"merchant": "amazon.com"}).json()["card"]["name"] == "Amazon.com"
    assert client.get("/catalog", params={"merchant": "Target"}).status_code == 404


def test_catalog_unavailable_is_bad_gateway(client, rest):
    rest.routes[("GET", "/gift-cards/catalog/US")] = TransportError("boom")
    rest.routes[("GET", "/merchant-directory/directory")] = {}
    rest.routes[("GET", "/merchant-directory/integrations")] = []

    assert client.get("/catalog").status_code == 502
