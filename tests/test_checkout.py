import pytest
from fastapi import HTTPException
from pydantic import ValidationError

import checkout
import config
import pricing
from cart import UserCart
from checkout import build_quote, place_order, validate_customer

SHOPPER = {"X-User-Email": "asha@example.com"}


@pytest.fixture
def festive(db):
    db["discountcode"].insert_one({"code": "FESTIVE10", "percent": 10, "active": True})
    db["discountcode"].insert_one({"code": "OLD50", "percent": 50, "active": False})


def test_validate_customer_cleans_digits(customer):
    valid = validate_customer(customer)
    assert valid.phone == "9876543210"
    assert valid.pincode == "411001"


@pytest.mark.parametrize("field,value,message", [
    ("name", "  ", "Please fill all required fields: name"),
    ("phone", "12345", "Phone number must have 10 digits"),
    ("pincode", "4110", "Pincode must have 6 digits"),
    ("email", "asha.example.com", "Invalid email address"),
])
def test_validate_customer_rejects(customer, field, value, message):
    customer[field] = value
    with pytest.raises(HTTPException) as exc:
        validate_customer(customer)
    assert exc.value.status_code == 400
    assert exc.value.detail == message


def test_quote_applies_discount_once(db, dress, earrings, festive):
    cart = UserCart(db, "asha@example.com")
    cart.add(dress["product_id"], "M", 1)
    cart.add(earrings["product_id"], None, 2)
    quote = build_quote(db, cart.lines(), "festive10")
    assert quote["subtotal"] == 2499 + 2 * 799
    assert quote["discount_valid"] is True
    assert quote["discount_code"] == "FESTIVE10"
    assert quote["discount_amount"] == 410  # 409.7
    assert quote["total"] == 4097 - 410
    assert quote["amount_minor"] == (4097 - 410) * 100
    assert quote["stock_issues"] == []


def test_quote_ignores_inactive_codes(db, dress, festive):
    cart = UserCart(db, "asha@example.com")
    cart.add(dress["product_id"], "M", 1)
    quote = build_quote(db, cart.lines(), "OLD50")
    assert quote["discount_valid"] is False
    assert quote["discount_amount"] == 0
    assert quote["total"] == 2499


def test_place_order_writes_order_and_decrements_stock(db, dress, earrings, customer, festive, monkeypatch):
    monkeypatch.setattr(config, "SHIPPING_CHARGE", 60.0)
    monkeypatch.setattr(config, "TAX_AMOUNT", 18.0)
    cart = UserCart(db, "asha@example.com")
    cart.add(dress["product_id"], "M", 2)
    cart.add(earrings["product_id"], None, 1)

    order, created = place_order(
        db, lines=cart.lines(), customer=customer, payment_id="pay_001",
        user_email="asha@example.com", discount_code="FESTIVE10", store=cart,
    )
    assert created
    assert order["status"] == "placed"
    assert order["total"] == pricing.order_total(order["subtotal"], order["discount_amount"], 60, 18)
    assert order["subtotal"] == sum(item["line_total"] for item in order["items"])
    assert order["customer"]["phone"] == "9876543210"

    assert db["product"].find_one({"product_id": dress["product_id"]})["stock_by_size"]["M"] == 3
    assert db["product"].find_one({"product_id": earrings["product_id"]})["stock"] == 2
    assert cart.lines() == []


def test_place_order_is_idempotent_per_payment(db, dress, customer):
    cart = UserCart(db, "asha@example.com")
    cart.add(dress["product_id"], "M", 1)
    lines = cart.lines()
    first, created = place_order(db, lines=lines, customer=customer, payment_id="pay_dup",
                                 user_email="asha@example.com", store=cart)
    again, created_again = place_order(db, lines=lines, customer=customer, payment_id="pay_dup",
                                       user_email="asha@example.com", store=cart)
    assert created and not created_again
    assert again["id"] == first["id"]
    assert db["order"].count_documents({}) == 1
    assert db["product"].find_one({"product_id": dress["product_id"]})["stock_by_size"]["M"] == 4


def test_payment_replay_by_another_caller_is_refused(db, dress, customer):
    lines = [{"line_id": "a", "product_id": dress["product_id"], "size": "M", "quantity": 1}]
    order, _ = place_order(db, lines=lines, customer=customer, payment_id="pay_mine",
                           user_email="asha@example.com", buy_now=True)
    for caller in (None, "meera@example.com"):
        with pytest.raises(HTTPException) as exc:
            place_order(db, lines=lines, customer=customer, payment_id="pay_mine", user_email=caller)
        assert exc.value.status_code == 409
        assert "customer" not in str(exc.value.detail)
    again, created = place_order(db, lines=lines, customer=customer, payment_id="pay_mine",
                                 user_email="owner@boutique.in")
    assert not created and again["id"] == order["id"]


def test_full_discount_on_fractional_subtotal(db, customer):
    db["product"].insert_one({"product_id": 7, "name": "Hair Tie", "category": "Earrings", "price": 0.5, "stock": 3})
    db["discountcode"].insert_one({"code": "FREE", "percent": 100, "active": True})
    lines = [{"line_id": "a", "product_id": 7, "size": "ONE SIZE", "quantity": 1}]
    order, created = place_order(db, lines=lines, customer=customer, payment_id="pay_free", discount_code="FREE")
    assert created
    assert order["discount_amount"] == 0.5
    assert order["total"] == 0
    assert db["product"].find_one({"product_id": 7})["stock"] == 2


def test_invalid_order_keeps_stock(db, dress, customer, monkeypatch):
    monkeypatch.setattr(config, "SHIPPING_CHARGE", -5000.0)
    lines = [{"line_id": "a", "product_id": dress["product_id"], "size": "M", "quantity": 1}]
    with pytest.raises(ValidationError):
        place_order(db, lines=lines, customer=customer, payment_id="pay_bad")
    assert db["product"].find_one({"product_id": dress["product_id"]})["stock_by_size"]["M"] == 5


def test_failed_order_write_releases_stock(db, dress, earrings, customer, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(checkout, "create_document", broken)
    lines = [
        {"line_id": "a", "product_id": dress["product_id"], "size": "M", "quantity": 2},
        {"line_id": "b", "product_id": earrings["product_id"], "size": "ONE SIZE", "quantity": 1},
    ]
    with pytest.raises(RuntimeError):
        place_order(db, lines=lines, customer=customer, payment_id="pay_broken")
    assert db["product"].find_one({"product_id": dress["product_id"]})["stock_by_size"]["M"] == 5
    assert db["product"].find_one({"product_id": earrings["product_id"]})["stock"] == 3
    assert db["order"].count_documents({}) == 0


def test_concurrent_duplicate_payment_releases_stock(db, dress, customer, monkeypatch):
    lines = [{"line_id": "a", "product_id": dress["product_id"], "size": "M", "quantity": 1}]
    first, _ = place_order(db, lines=lines, customer=customer, payment_id="pay_race",
                           user_email="asha@example.com", buy_now=True)
    stored = db["order"].find_one({"payment_id": "pay_race"})
    # The other request wrote its order after this one looked for it
    answers = iter([None, stored])
    monkeypatch.setattr(checkout, "find_order_by_payment", lambda db, payment_id: next(answers))
    order, created = place_order(db, lines=lines, customer=customer, payment_id="pay_race",
                                 user_email="asha@example.com", buy_now=True)
    assert not created
    assert order["id"] == first["id"]
    assert db["product"].find_one({"product_id": dress["product_id"]})["stock_by_size"]["M"] == 4


def test_place_order_refuses_to_oversell(db, dress, customer):
    lines = [{"line_id": "a", "product_id": dress["product_id"], "size": "S", "quantity": 3}]
    with pytest.raises(HTTPException) as exc:
        place_order(db, lines=lines, customer=customer, payment_id="pay_short")
    assert exc.value.status_code == 409
    assert "only 2 left" in exc.value.detail
    assert db["order"].count_documents({}) == 0
    assert db["product"].find_one({"product_id": dress["product_id"]})["stock_by_size"]["S"] == 2


def test_place_order_requires_items_and_payment(db, customer):
    with pytest.raises(HTTPException) as exc:
        place_order(db, lines=[], customer=customer, payment_id="pay_x")
    assert exc.value.detail == "Cart is empty"
    with pytest.raises(HTTPException) as exc:
        place_order(db, lines=[], customer=customer, payment_id=" ")
    assert exc.value.detail == "Missing payment id"


# ---------------- API ----------------

def test_checkout_flow_for_signed_in_user(client, db, dress, customer, festive):
    client.post("/api/cart/items", headers=SHOPPER, json={"product_id": dress["product_id"], "size": "M", "quantity": 2})

    quote = client.post("/api/checkout/quote", headers=SHOPPER, json={"discount_code": "FESTIVE10"}).json()
    assert quote["total"] == 4998 - 500
    assert quote["currency"] == "INR"

    res = client.post("/api/checkout/place", headers=SHOPPER, json={
        "customer": customer, "payment_id": "pay_api_1", "discount_code": "FESTIVE10",
    })
    assert res.status_code == 201
    body = res.json()
    assert body["created"] is True
    assert body["order"]["total"] == quote["total"]
    assert body["order"]["user_email"] == "asha@example.com"
    assert client.get("/api/cart", headers=SHOPPER).json()["items"] == []

    # Replayed payment callback
    res = client.post("/api/checkout/place", headers=SHOPPER, json={"customer": customer, "payment_id": "pay_api_1"})
    assert res.status_code == 200
    assert res.json()["created"] is False

    orders = client.get("/api/orders", headers=SHOPPER).json()
    assert [o["payment_id"] for o in orders] == ["pay_api_1"]


def test_buy_now_leaves_cart_alone(client, db, dress, earrings, customer):
    client.post("/api/cart/items", headers=SHOPPER, json={"product_id": earrings["product_id"], "quantity": 1})
    res = client.post("/api/checkout/place", headers=SHOPPER, json={
        "customer": customer,
        "payment_id": "pay_buy_now",
        "buy_now": {"product_id": dress["product_id"], "size": "L", "quantity": 1},
    })
    # L is sold out
    assert res.status_code == 409

    res = client.post("/api/checkout/place", headers=SHOPPER, json={
        "customer": customer,
        "payment_id": "pay_buy_now",
        "buy_now": {"product_id": dress["product_id"], "size": "S", "quantity": 1,
                    "customization": {"text": "ASHA"}},
    })
    assert res.status_code == 201
    order = res.json()["order"]
    assert order["buy_now"] is True
    assert order["items"][0]["unit_price"] == 2499 + 300
    assert client.get("/api/cart", headers=SHOPPER).json()["item_count"] == 1


def test_guest_checkout_clears_cookie_cart(client, db, earrings, customer):
    client.post("/api/cart/items", json={"product_id": earrings["product_id"], "quantity": 2})
    res = client.post("/api/checkout/place", json={"customer": customer, "payment_id": "pay_guest"})
    assert res.status_code == 201
    assert res.json()["order"]["user_email"] is None
    assert client.get("/api/cart").json()["items"] == []
    assert db["product"].find_one({"product_id": earrings["product_id"]})["stock"] == 1


def test_discount_code_validation_endpoint(client, festive):
    assert client.post("/api/discount-codes/validate", json={"code": "festive10"}).json() == {
        "valid": True, "code": "FESTIVE10", "percent": 10,
    }
    assert client.post("/api/discount-codes/validate", json={"code": "nope"}).json()["valid"] is False
