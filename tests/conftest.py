import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import database
from catalog import create_product
from main import app

ADMIN = "owner@boutique.in"
SHOPPER = "asha@example.com"


@pytest.fixture
def db():
    mdb = mongomock.MongoClient()["storefront_test"]
    database.ensure_indexes(mdb)
    mdb["admin"].insert_one({"email": ADMIN})
    return mdb


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setattr(config, "EMAIL_USER", None)
    monkeypatch.setattr(config, "EMAIL_PASS", None)
    app.dependency_overrides[database.get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def dress(db):
    return create_product(db, {
        "name": "Rosewood Wrap Dress",
        "description": "Midi wrap dress",
        "category": "Dresses",
        "price": 2499,
        "customizable": True,
        "custom_price": 300,
        "tag": "bestseller",
        "images": ["https://img.example/dress.jpg"],
        "stock_by_size": {"S": 2, "M": 5, "L": 0, "XL": 1},
    })


@pytest.fixture
def earrings(db):
    return create_product(db, {
        "name": "Blush Pearl Earrings",
        "category": "Earrings",
        "price": 799,
        "tag": "gift",
        "stock": 3,
    })


@pytest.fixture
def customer():
    return {
        "name": "Asha Patil",
        "email": SHOPPER,
        "phone": "98765 43210",
        "address": "12 MG Road",
        "pincode": "411001",
        "state_city": "Pune, Maharashtra",
    }
