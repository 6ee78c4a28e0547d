"""
Stock lookups and decrements.

Stock lives on the product document either as a general `stock` counter or
as `stock_by_size` counts. Decrements are applied one line at a time with a
conditional update so two concurrent checkouts cannot push a count below
zero; if a later line fails, earlier lines are put back.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException
from pymongo import ReturnDocument

from schemas import ONE_SIZE, SIZES

logger = logging.getLogger(__name__)

ONE_SIZE_CATEGORIES = ("purse", "earring")


def is_one_size(product: Dict[str, Any]) -> bool:
    category = (product.get("category") or "").lower()
    if any(word in category for word in ONE_SIZE_CATEGORIES):
        return True
    return not product.get("stock_by_size")


def normalize_size(product: Dict[str, Any], size: Optional[str]) -> str:
    if is_one_size(product):
        return ONE_SIZE
    size = (size or "").strip().upper()
    if size not in SIZES:
        raise HTTPException(status_code=400, detail=f"Invalid size {size or '(none)'}")
    return size


def stock_for_size(product: Dict[str, Any], size: Optional[str]) -> int:
    size = (size or "").upper()
    by_size = product.get("stock_by_size") or {}
    if size in by_size and isinstance(by_size[size], int):
        return max(0, by_size[size])
    if isinstance(product.get("stock"), int):
        return max(0, product["stock"])
    return 0


def available_quantity(product: Dict[str, Any], size: Optional[str], in_cart: int) -> int:
    return max(0, stock_for_size(product, size) - in_cart)


def product_label(product: Dict[str, Any]) -> str:
    return product.get("name") or product.get("description") or f"Item {product.get('product_id')}"


def check_lines(products: Dict[int, Dict[str, Any]], lines: Iterable[Dict[str, Any]]) -> List[str]:
    """Human readable problems for lines asking for more than is on hand."""
    issues = []
    wanted: Dict[Tuple[int, str], int] = {}
    for line in lines:
        qty = int(line.get("quantity") or 0)
        if qty <= 0:
            continue
        key = (line["product_id"], (line.get("size") or "").upper())
        wanted[key] = wanted.get(key, 0) + qty

    for (product_id, size), qty in wanted.items():
        product = products.get(product_id)
        if product is None:
            issues.append(f"Item {product_id} is no longer available")
            continue
        left = stock_for_size(product, size)
        if qty > left:
            issues.append(f"{product_label(product)} ({size}) - only {left} left")
    return issues


def _decrement_fields(product: Dict[str, Any], size: str) -> List[str]:
    fields = []
    by_size = product.get("stock_by_size") or {}
    if size in by_size and isinstance(by_size[size], int):
        fields.append(f"stock_by_size.{size}")
    if isinstance(product.get("stock"), int):
        fields.append("stock")
    return fields


def _apply(db, product_id: int, fields: List[str], qty: int) -> bool:
    filt: Dict[str, Any] = {"product_id": product_id}
    for field in fields:
        filt[field] = {"$gte": qty}
    updated = db["product"].find_one_and_update(
        filt,
        {"$inc": {field: -qty for field in fields}},
        return_document=ReturnDocument.AFTER,
    )
    return updated is not None


def _restore(db, applied: List[Tuple[int, List[str], int]]) -> None:
    for product_id, fields, qty in reversed(applied):
        try:
            db["product"].update_one({"product_id": product_id}, {"$inc": {f: qty for f in fields}})
        except Exception:
            logger.exception("Failed to restore stock for product %s (%s x%d)", product_id, fields, qty)


def reserve_stock(db, products: Dict[int, Dict[str, Any]], lines: Iterable[Dict[str, Any]]) -> None:
    """Decrement stock for every line or for none of them.

    Raises HTTP 409 naming the first line that could not be covered.
    """
    applied: List[Tuple[int, List[str], int]] = []
    for line in lines:
        qty = int(line.get("quantity") or 0)
        if qty <= 0:
            continue
        product = products.get(line["product_id"])
        if product is None:
            _restore(db, applied)
            raise HTTPException(status_code=404, detail=f"Product {line['product_id']} not found")
        fields = _decrement_fields(product, (line.get("size") or "").upper())
        if not fields:
            # Untracked stock
            continue
        try:
            ok = _apply(db, line["product_id"], fields, qty)
        except Exception:
            _restore(db, applied)
            raise
        if not ok:
            _restore(db, applied)
            logger.warning("Stock conflict for product %s size %s qty %d", line["product_id"], line.get("size"), qty)
            raise HTTPException(
                status_code=409,
                detail=f"{product_label(product)} ({line.get('size')}) is out of stock for the requested quantity",
            )
        applied.append((line["product_id"], fields, qty))
    for product_id, fields, qty in applied:
        logger.info("Stock decremented: product %s %s -%d", product_id, ",".join(fields), qty)


def release_stock(db, products: Dict[int, Dict[str, Any]], lines: Iterable[Dict[str, Any]]) -> None:
    """Undo a successful `reserve_stock` for the same lines."""
    applied = []
    for line in lines:
        qty = int(line.get("quantity") or 0)
        product = products.get(line["product_id"])
        if qty <= 0 or product is None:
            continue
        fields = _decrement_fields(product, (line.get("size") or "").upper())
        if fields:
            applied.append((line["product_id"], fields, qty))
    _restore(db, applied)
