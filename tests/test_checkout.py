import json
from datetime import datetime
import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from fastapi.testclient import TestClient
from storefront.core_settings import Settings
from storefront.main import create_app
from storefront.domain.models import Customer, Order, OrderItem, Product, ProductStatus, StockMovement, Variant
from storefront.application.checkout import CheckoutService, CheckoutValidator, OrderAssembler
from storefront.application.ledger import InventoryLedger
from helpers import build_payload, line, count, stock_of, movements_of


def test_checkout_places_order_and_decrements_stock(client, db, make_variant):
    variant = make_variant(stock_qty=5, low_stock_threshold=2, base_price=1000)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 3)))

    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["orderNumber"].startswith("RR-")
    assert stock_of(db, variant.id) == 2

    movements = movements_of(db, variant.id)
    assert len(movements) == 1
    assert movements[0].delta == -3
    assert movements[0].reason == f"Order {body['orderNumber']}"
    assert movements[0].actor_admin_id is None

    order = db.get(Order, body["orderId"])
    assert order.order_number == body["orderNumber"]
    assert [(i.sku_snapshot, i.qty, i.price_snapshot) for i in order.items] == [(variant.sku, 3, 1000)]
    assert order.payment_status == "UNPAID"
    assert order.fulfillment_status == "UNFULFILLED"


def test_second_checkout_beyond_remaining_stock_is_rejected(client, db, make_variant):
    variant = make_variant(stock_qty=5)
    assert client.post("/api/checkout", json=build_payload(line(variant, 3))).status_code == 200

    resp = client.post("/api/checkout", json=build_payload(line(variant, 3), email="other@example.com"))

    assert resp.status_code == 409
    assert resp.json() == {"error": "Some items are out of stock.", "stockIssues": [variant.sku]}
    assert stock_of(db, variant.id) == 2
    assert count(db, Order) == 1
    assert len(movements_of(db, variant.id)) == 1


def test_one_unknown_line_rejects_whole_cart(client, db, make_variant, make_product):
    product = make_product()
    valid = [
        make_variant(product=product, size="S", stock_qty=4),
        make_variant(product=product, size="M", stock_qty=4),
        make_variant(product=product, size="L", stock_qty=4),
    ]
    items = [line(v, 1) for v in valid] + [{"productId": product.id, "size": "XXL", "color": "Black", "quantity": 1}]

    resp = client.post("/api/checkout", json=build_payload(*items))

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Some items are no longer available."
    assert body["missingItems"] == [f"{product.id}:XXL:Black"]
    assert count(db, Order) == 0
    assert count(db, StockMovement) == 0
    assert all(stock_of(db, v.id) == 4 for v in valid)


def test_missing_items_are_reported_before_stock_issues(client, db, make_variant):
    short = make_variant(stock_qty=0)
    items = [line(short, 1), {"productId": "nope", "size": "M", "color": "Black", "quantity": 1}]

    resp = client.post("/api/checkout", json=build_payload(*items))

    assert resp.status_code == 400
    assert resp.json()["missingItems"] == ["nope:M:Black"]


@pytest.mark.parametrize("variant_kwargs", [
    {"is_active": False},
    {"status": ProductStatus.DRAFT.value},
    {"status": ProductStatus.ARCHIVED.value},
])
def test_unpurchasable_variants_count_as_missing(client, db, make_variant, variant_kwargs):
    variant = make_variant(**variant_kwargs)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1)))

    assert resp.status_code == 400
    assert len(resp.json()["missingItems"]) == 1


def test_soft_deleted_product_counts_as_missing(client, db, make_variant):
    variant = make_variant()
    db.execute(update(Product).where(Product.id == variant.product_id).values(deleted_at=datetime.utcnow()))
    db.commit()

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1)))

    assert resp.status_code == 400


def test_single_line_over_stock_is_rejected_by_sku(client, db, make_variant):
    variant = make_variant(stock_qty=2)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 3)))

    assert resp.status_code == 409
    assert resp.json()["stockIssues"] == [variant.sku]
    assert count(db, Order) == 0
    assert stock_of(db, variant.id) == 2


def test_lines_for_the_same_variant_share_its_stock(client, db, make_variant):
    variant = make_variant(stock_qty=5)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 3), line(variant, 3)))

    assert resp.status_code == 409
    assert resp.json()["stockIssues"] == [variant.sku]
    assert stock_of(db, variant.id) == 5


def test_size_and_color_match_ignoring_case_and_spaces(client, db, make_variant):
    variant = make_variant(size="M", color="Black", stock_qty=3)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1, size=" m ", color="BLACK ")))

    assert resp.status_code == 200
    assert stock_of(db, variant.id) == 2


@pytest.mark.parametrize("mutate", [
    lambda p: p.update(items=[]),
    lambda p: p["items"][0].update(quantity=0),
    lambda p: p["items"][0].update(quantity=-1),
    lambda p: p["items"][0].update(quantity=1.5),
    lambda p: p["items"][0].update(quantity="2"),
    lambda p: p["customer"].update(email="not-an-email"),
    lambda p: p["customer"].update(firstName="   "),
    lambda p: p["shipping"].pop("city"),
    lambda p: p.update(payment={"method": "card", "cardName": "Jane", "cardNumber": "12"}),
    lambda p: p.pop("customer"),
])
def test_invalid_payload_is_rejected_without_side_effects(client, db, make_variant, mutate):
    variant = make_variant(stock_qty=5)
    payload = build_payload(line(variant, 1))
    mutate(payload)

    resp = client.post("/api/checkout", json=payload)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid payload."}
    assert count(db, Order) == 0
    assert stock_of(db, variant.id) == 5


def test_malformed_json_is_invalid_payload(client, make_variant):
    resp = client.post("/api/checkout", content=b"{not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid payload."}


@pytest.mark.parametrize("unit_price, expected_fee, expected_total", [
    (1800, 150, 1950),
    (2000, 0, 2000),
])
def test_shipping_fee_boundary(client, db, make_variant, unit_price, expected_fee, expected_total):
    variant = make_variant(base_price=unit_price)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1)))

    order = db.get(Order, resp.json()["orderId"])
    assert (order.subtotal, order.shipping_fee, order.total) == (unit_price, expected_fee, expected_total)


def test_price_override_wins_over_base_price(client, db, make_variant):
    variant = make_variant(base_price=1000, price_override=1250)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 2)))

    order = db.get(Order, resp.json()["orderId"])
    assert order.items[0].price_snapshot == 1250
    assert order.subtotal == 2500
    assert order.shipping_fee == 0


def test_price_snapshot_survives_catalog_price_changes(client, db, make_variant):
    variant = make_variant(base_price=900)
    order_id = client.post("/api/checkout", json=build_payload(line(variant, 1))).json()["orderId"]

    db.execute(update(Product).where(Product.id == variant.product_id).values(base_price=5000))
    db.execute(update(Variant).where(Variant.id == variant.id).values(price_override=4000))
    db.commit()

    db.expire_all()
    item = db.execute(select(OrderItem).where(OrderItem.order_id == order_id)).scalar_one()
    assert item.price_snapshot == 900


def test_only_last_four_card_digits_are_stored(client, db, make_variant):
    variant = make_variant()
    payment = {"method": "card", "cardName": "Jane Cruz", "cardNumber": "4111 1111 1111 1234"}

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1), payment=payment))

    order = db.get(Order, resp.json()["orderId"])
    assert order.payment_details == {"method": "card", "cardholder_name": "Jane Cruz", "last4": "1234"}
    stored = json.dumps({"payment": order.payment_details, "shipping": order.shipping_address})
    assert "4111" not in stored


def test_order_without_payment_has_no_payment_snapshot(client, db, make_variant):
    variant = make_variant()

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1)))

    assert db.get(Order, resp.json()["orderId"]).payment_details is None


def test_shipping_address_is_a_flat_snapshot(client, db, make_variant):
    variant = make_variant()

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1)))

    address = db.get(Order, resp.json()["orderId"]).shipping_address
    assert address["name"] == "Jane Cruz"
    assert address["address_line"] == "12 Mabini St, Unit 4B"
    assert address["postal_code"] == "2000"
    assert address["barangay"] == "Dolores"


def test_customer_is_reused_by_email(client, db, make_variant):
    variant = make_variant(stock_qty=10)

    first = client.post("/api/checkout", json=build_payload(line(variant, 1), email="Jane@Example.com"))
    second = client.post("/api/checkout", json=build_payload(line(variant, 1), email="jane@example.com"))

    assert first.status_code == second.status_code == 200
    assert count(db, Customer) == 1
    customer = db.execute(select(Customer)).scalar_one()
    assert customer.email == "jane@example.com"
    assert customer.name == "Jane Cruz"
    assert {o.customer_id for o in db.execute(select(Order)).scalars()} == {customer.id}


def test_failed_write_rolls_back_the_whole_order(client, db, make_variant, make_product, monkeypatch):
    product = make_product()
    first = make_variant(product=product, size="S", stock_qty=5)
    second = make_variant(product=product, size="M", stock_qty=5)
    original = InventoryLedger.apply_stock_change
    calls = []

    def failing(self, variant_id, delta, reason, actor=None, floor_at_zero=False):
        calls.append(variant_id)
        if len(calls) == 2:
            raise OperationalError("UPDATE variants", {}, Exception("disk I/O error"))
        return original(self, variant_id, delta, reason, actor, floor_at_zero)

    monkeypatch.setattr(InventoryLedger, "apply_stock_change", failing)

    resp = client.post("/api/checkout", json=build_payload(line(first, 2), line(second, 2)))

    assert resp.status_code == 500
    assert resp.json() == {"error": "Unable to create order at this time."}
    assert count(db, Order) == 0
    assert count(db, OrderItem) == 0
    assert count(db, StockMovement) == 0
    assert count(db, Customer) == 0
    assert stock_of(db, first.id) == 5
    assert stock_of(db, second.id) == 5


def test_stock_taken_after_validation_fails_the_order(app, client, db, make_variant, monkeypatch):
    variant = make_variant(stock_qty=5)
    original = CheckoutValidator.validate

    def racing(self, items):
        lines = original(self, items)
        # A concurrent buyer takes four units between the check and the write
        other = app.state.database.session()
        InventoryLedger(other).apply_stock_change(variant.id, -4, "Order RR-CONCURRENT")
        other.commit()
        other.close()
        return lines

    monkeypatch.setattr(CheckoutValidator, "validate", racing)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 3)))

    assert resp.status_code == 409
    assert resp.json()["stockIssues"] == [variant.sku]
    assert stock_of(db, variant.id) == 1
    assert count(db, Order) == 0
    assert [m.delta for m in movements_of(db, variant.id)] == [-4]


def test_order_number_clash_is_retried_once(client, db, make_variant, monkeypatch):
    variant = make_variant(stock_qty=10)
    taken = client.post("/api/checkout", json=build_payload(line(variant, 1))).json()["orderNumber"]
    numbers = iter([taken, "RR-FRESH-ABC123"])
    monkeypatch.setattr(OrderAssembler, "generate_order_number", lambda self: next(numbers))

    resp = client.post("/api/checkout", json=build_payload(line(variant, 2)))

    assert resp.status_code == 200
    assert resp.json()["orderNumber"] == "RR-FRESH-ABC123"
    assert stock_of(db, variant.id) == 7
    assert [m.delta for m in movements_of(db, variant.id)] == [-1, -2]


def test_repeated_order_number_clash_gives_up(client, db, make_variant, monkeypatch, caplog):
    variant = make_variant(stock_qty=10)
    taken = client.post("/api/checkout", json=build_payload(line(variant, 1))).json()["orderNumber"]
    monkeypatch.setattr(OrderAssembler, "generate_order_number", lambda self: taken)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 2)))

    assert resp.status_code == 500
    assert resp.json() == {"error": "Unable to create order at this time."}
    assert count(db, Order) == 1
    assert stock_of(db, variant.id) == 9
    give_up = [r for r in caplog.records if getattr(r, "extra_fields", {}).get("code") == "ORDER_NUMBER_COLLISION"]
    assert len(give_up) == 1
    assert give_up[0].extra_fields["attempts"] == 2


def test_idempotency_key_replays_the_first_order(client, db, make_variant):
    variant = make_variant(stock_qty=5)
    headers = {"Idempotency-Key": "cart-42-attempt"}

    first = client.post("/api/checkout", json=build_payload(line(variant, 2)), headers=headers)
    second = client.post("/api/checkout", json=build_payload(line(variant, 2)), headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.json() == second.json()
    assert count(db, Order) == 1
    assert stock_of(db, variant.id) == 3
    assert len(movements_of(db, variant.id)) == 1


def test_checkout_without_database_is_unavailable():
    app = create_app(Settings(DATABASE_URL=None, POSTGRES_HOST=None, REDIS_URL=None, LOG_LEVEL="WARNING"))
    with TestClient(app) as client:
        resp = client.post("/api/checkout", json=build_payload({"productId": "p", "size": "M", "color": "Black", "quantity": 1}))

    assert resp.status_code == 503
    assert resp.json() == {"error": "Database is not configured."}


def test_database_error_while_validating_is_a_json_failure(client, db, make_variant, monkeypatch):
    variant = make_variant(stock_qty=5)

    def failing(self, product_ids):
        raise OperationalError("SELECT variants", {}, Exception("server closed the connection"))

    monkeypatch.setattr(CheckoutValidator, "purchasable_variants", failing)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1)))

    assert resp.status_code == 500
    assert resp.json() == {"error": "Unable to create order at this time."}
    assert count(db, Order) == 0
    assert stock_of(db, variant.id) == 5


def test_database_error_on_idempotency_lookup_is_a_json_failure(client, db, make_variant, monkeypatch):
    variant = make_variant(stock_qty=5)

    def failing(self, key):
        raise OperationalError("SELECT orders", {}, Exception("server closed the connection"))

    monkeypatch.setattr(CheckoutService, "find_by_idempotency_key", failing)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 1)), headers={"Idempotency-Key": "k-1"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Unable to create order at this time."}
    assert stock_of(db, variant.id) == 5


def test_customer_created_concurrently_is_reused(app, client, db, make_variant, monkeypatch):
    variant = make_variant(stock_qty=5)
    original = CheckoutService._upsert_customer

    def racing(self, customer):
        # Another first-time checkout for the same email commits just before our insert
        other = app.state.database.session()
        other.add(Customer(email=customer.email, name="Jane Cruz"))
        other.commit()
        other.close()
        return original(self, customer)

    monkeypatch.setattr(CheckoutService, "_upsert_customer", racing)

    resp = client.post("/api/checkout", json=build_payload(line(variant, 2)))

    assert resp.status_code == 200
    assert count(db, Customer) == 1
    customer = db.execute(select(Customer)).scalar_one()
    order = db.execute(select(Order)).scalar_one()
    assert order.customer_id == customer.id
    assert stock_of(db, variant.id) == 3
    assert len(movements_of(db, variant.id)) == 1
