"""Catalog reads and admin inventory edits for the `product` collection."""

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING

from database import create_document, serialize_doc
from schemas import Product, ProductUpdate

logger = logging.getLogger(__name__)

SORTS = {
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
    "newest": [("created_at", DESCENDING), ("product_id", DESCENDING)],
    "name": [("name", ASCENDING)],
}


def list_products(db, category: Optional[str] = None, search: Optional[str] = None,
                  sort: Optional[str] = None) -> List[Dict[str, Any]]:
    filter_q: Dict[str, Any] = {}
    if category:
        filter_q["category"] = category
    if search:
        pattern = re.escape(search.strip())
        filter_q["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if sort and sort not in SORTS:
        raise HTTPException(status_code=400, detail=f"Unknown sort {sort!r}")
    cursor = db["product"].find(filter_q).sort(SORTS[sort or "newest"])
    return [serialize_doc(p) for p in cursor]


def list_categories(db) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for doc in db["product"].find({}, {"category": 1}):
        name = doc.get("category") or "Other"
        counts[name] = counts.get(name, 0) + 1
    return [{"name": name, "count": counts[name]} for name in sorted(counts)]


def find_product(db, product_id: int) -> Optional[Dict[str, Any]]:
    return db["product"].find_one({"product_id": product_id})


def get_product(db, product_id: int) -> Dict[str, Any]:
    prod = find_product(db, product_id)
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")
    return prod


def get_product_by_name(db, name: str) -> Dict[str, Any]:
    prod = db["product"].find_one({"name": name})
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")
    return prod


def products_by_id(db, product_ids) -> Dict[int, Dict[str, Any]]:
    ids = sorted({int(i) for i in product_ids})
    if not ids:
        return {}
    return {p["product_id"]: p for p in db["product"].find({"product_id": {"$in": ids}})}


def next_product_id(db) -> int:
    last = db["product"].find_one({}, sort=[("product_id", DESCENDING)])
    return int(last["product_id"]) + 1 if last else 1


# ---------------- Admin ----------------

def search_inventory(db, tag: Optional[str] = None) -> List[Dict[str, Any]]:
    filter_q: Dict[str, Any] = {}
    if tag and tag.strip():
        filter_q["tag"] = {"$regex": re.escape(tag.strip()), "$options": "i"}
    cursor = db["product"].find(filter_q).sort("product_id", ASCENDING)
    return [serialize_doc(p) for p in cursor]


def create_product(db, data: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(data)
    payload["product_id"] = next_product_id(db)
    model = Product(**payload)
    create_document(db, "product", model)
    logger.info("Product %s created: %s", model.product_id, model.name)
    return find_product(db, model.product_id)


def update_product(db, product_id: int, payload: ProductUpdate) -> Dict[str, Any]:
    updates = {k: v for k, v in payload.model_dump().items() if v is not None}
    if not updates:
        return get_product(db, product_id)
    existing = get_product(db, product_id)
    # Validate the merged document before writing it
    merged = {k: v for k, v in existing.items() if k in Product.model_fields}
    merged.update(updates)
    Product(**merged)
    db["product"].update_one({"product_id": product_id}, {"$set": updates})
    logger.info("Product %s updated: %s", product_id, ", ".join(sorted(updates)))
    return get_product(db, product_id)


def delete_product(db, product_id: int) -> None:
    res = db["product"].delete_one({"product_id": product_id})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Product %s deleted", product_id)


SAMPLE_PRODUCTS = [
    {
        "name": "Rosewood Wrap Dress",
        "description": "Flowy midi wrap dress in soft georgette with a tie waist.",
        "category": "Dresses",
        "price": 2499,
        "original_price": 3199,
        "customizable": True,
        "custom_price": 300,
        "material": "Georgette",
        "tag": "bestseller",
        "images": ["https://images.unsplash.com/photo-1595777457583-95e059d581b8?q=80&w=1200&auto=format&fit=crop"],
        "stock_by_size": {"S": 5, "M": 8, "L": 6, "XL": 2},
    },
    {
        "name": "Ivory Linen Co-ord",
        "description": "Relaxed linen shirt and trouser set for warm days.",
        "category": "Co-ords",
        "price": 2999,
        "material": "Linen",
        "tag": "new",
        "images": ["https://images.unsplash.com/photo-1485968579580-b6d095142e6e?q=80&w=1200&auto=format&fit=crop"],
        "stock_by_size": {"S": 4, "M": 4, "L": 4, "XL": 1},
    },
    {
        "name": "Blush Pearl Earrings",
        "description": "Freshwater pearl drops on gold-plated hooks.",
        "category": "Earrings",
        "price": 799,
        "original_price": 999,
        "material": "Pearl",
        "tag": "gift",
        "images": ["https://images.unsplash.com/photo-1535632066927-ab7c9ab60908?q=80&w=1200&auto=format&fit=crop"],
        "stock": 20,
    },
    {
        "name": "Quilted Mini Purse",
        "description": "Compact quilted purse with a detachable chain strap.",
        "category": "Purses",
        "price": 1499,
        "material": "Vegan leather",
        "tag": "gift",
        "images": ["https://images.unsplash.com/photo-1566150905458-1bf1fc113f0d?q=80&w=1200&auto=format&fit=crop"],
        "stock": 10,
    },
]


def seed_products(db) -> Dict[str, Any]:
    existing = db["product"].count_documents({})
    if existing > 0:
        return {"message": "Products already exist", "count": existing}
    ids = [create_product(db, sample)["product_id"] for sample in SAMPLE_PRODUCTS]
    return {"inserted": len(ids), "ids": ids}
