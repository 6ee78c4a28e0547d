from datetime import datetime, timedelta, timezone

ADMIN = {"X-User-Email": "owner@boutique.in"}
SHOPPER = {"X-User-Email": "asha@example.com"}


def _order(db, payment_id, email="asha@example.com", minutes_ago=0, **extra):
    doc = {
        "items": [{"product_id": 1, "name": "Rosewood Wrap Dress", "size": "M", "quantity": 1,
                   "unit_price": 2499, "line_total": 2499}],
        "customer": {"name": "Asha", "email": email},
        "subtotal": 2499,
        "total": 2499,
        "payment_id": payment_id,
        "status": "placed",
        "user_email": email,
        "created_at": datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    }
    doc.update(extra)
    return str(db["order"].insert_one(doc).inserted_id)


def test_admin_routes_require_identity_and_role(client):
    assert client.get("/api/admin/inventory").status_code == 401
    assert client.get("/api/admin/inventory", headers=SHOPPER).status_code == 403
    assert client.get("/api/admin/inventory", headers=ADMIN).status_code == 200


def test_me_reports_admin_flag(client):
    assert client.get("/api/me", headers=ADMIN).json() == {"email": "owner@boutique.in", "is_admin": True}
    assert client.get("/api/me").json() == {"email": None, "is_admin": False}


def test_inventory_create_assigns_next_id(client, dress):
    res = client.post("/api/admin/inventory", headers=ADMIN, json={
        "product_id": 999,
        "name": "Sage Kurta",
        "category": "Kurtas",
        "price": 1799,
        "tag": "New Arrival",
        "stock_by_size": {"s": 3, "m": 3},
    })
    assert res.status_code == 201
    body = res.json()
    assert body["product_id"] == dress["product_id"] + 1
    assert body["stock_by_size"] == {"S": 3, "M": 3}

    bad = client.post("/api/admin/inventory", headers=ADMIN, json={
        "name": "Broken", "category": "Tops", "price": 10, "stock_by_size": {"XXL": 1},
    })
    assert bad.status_code == 422


def test_inventory_tag_search_update_and_delete(client, dress, earrings):
    found = client.get("/api/admin/inventory", params={"tag": "BEST"}, headers=ADMIN).json()
    assert [p["product_id"] for p in found] == [dress["product_id"]]

    res = client.put(f"/api/admin/inventory/{earrings['product_id']}", headers=ADMIN,
                     json={"price": 849, "stock": 10})
    assert res.json()["price"] == 849
    assert res.json()["stock"] == 10

    assert client.put("/api/admin/inventory/404", headers=ADMIN, json={"price": 1}).status_code == 404
    assert client.delete(f"/api/admin/inventory/{earrings['product_id']}", headers=ADMIN).json() == {"deleted": True}
    assert client.get(f"/api/products/{earrings['product_id']}").status_code == 404


def test_catalog_listing_filters_and_sorts(client, dress, earrings):
    res = client.get("/api/products", params={"sort": "price_asc"}).json()
    assert [p["name"] for p in res["items"]] == ["Blush Pearl Earrings", "Rosewood Wrap Dress"]
    res = client.get("/api/products", params={"category": "Dresses"}).json()
    assert res["count"] == 1
    res = client.get("/api/products", params={"search": "wrap"}).json()
    assert res["items"][0]["product_id"] == dress["product_id"]
    assert client.get("/api/products", params={"sort": "random"}).status_code == 400
    assert client.get("/api/categories").json() == [
        {"name": "Dresses", "count": 1},
        {"name": "Earrings", "count": 1},
    ]
    assert client.get("/api/products/by-name/Rosewood Wrap Dress").json()["product_id"] == dress["product_id"]


def test_seed_only_fills_empty_catalog(client):
    first = client.post("/api/seed").json()
    assert first["inserted"] == 4
    assert client.post("/api/seed").json()["count"] == 4


def test_admin_order_status_updates(client, db):
    order_id = _order(db, "pay_1")
    res = client.patch(f"/api/admin/orders/{order_id}", headers=ADMIN,
                       json={"status": "shipped", "tracking_id": " DL123 "})
    assert res.json()["status"] == "shipped"
    assert res.json()["tracking_id"] == "DL123"

    assert client.patch(f"/api/admin/orders/{order_id}", headers=ADMIN, json={"status": "lost"}).status_code == 400
    assert client.patch("/api/admin/orders/not-an-id", headers=ADMIN, json={"status": "done"}).status_code == 400
    assert client.patch(f"/api/admin/orders/{order_id}", headers=SHOPPER, json={"status": "done"}).status_code == 403


def test_orders_listed_newest_first_and_scoped(client, db):
    _order(db, "pay_old", minutes_ago=30)
    _order(db, "pay_new", minutes_ago=1)
    other = _order(db, "pay_other", email="meera@example.com")

    mine = client.get("/api/orders", headers=SHOPPER).json()
    assert [o["payment_id"] for o in mine] == ["pay_new", "pay_old"]
    assert client.get(f"/api/orders/{other}", headers=SHOPPER).status_code == 404
    assert client.get(f"/api/orders/{other}", headers=ADMIN).status_code == 200

    everything = client.get("/api/admin/orders", headers=ADMIN).json()
    assert len(everything) == 3
    assert client.get("/api/orders").status_code == 401


def test_buy_again_readds_lines_and_reports_shortfalls(client, db, dress):
    order_id = _order(db, "pay_again", items=[
        {"product_id": dress["product_id"], "name": "Rosewood Wrap Dress", "size": "M", "quantity": 2,
         "unit_price": 2499, "line_total": 4998},
        {"product_id": dress["product_id"], "name": "Rosewood Wrap Dress", "size": "L", "quantity": 1,
         "unit_price": 2499, "line_total": 2499},
    ])
    res = client.post(f"/api/orders/{order_id}/buy-again", headers=SHOPPER).json()
    assert len(res["added"]) == 1
    assert res["skipped"][0]["size"] == "L"
    assert client.get("/api/cart", headers=SHOPPER).json()["item_count"] == 2


def test_discount_code_admin(client):
    res = client.post("/api/admin/discount-codes", headers=ADMIN, json={"code": " diwali20 ", "percent": 20})
    assert res.status_code == 201
    assert res.json()["code"] == "DIWALI20"
    assert client.post("/api/admin/discount-codes", headers=ADMIN,
                       json={"code": "DIWALI20", "percent": 5}).status_code == 409
    assert client.post("/api/admin/discount-codes", headers=ADMIN,
                       json={"code": "FREE", "percent": 150}).status_code == 422
    assert [d["code"] for d in client.get("/api/admin/discount-codes", headers=ADMIN).json()] == ["DIWALI20"]
    assert client.delete("/api/admin/discount-codes/diwali20", headers=ADMIN).json() == {"deleted": True}
