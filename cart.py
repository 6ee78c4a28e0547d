"""
Carts for signed-in users and guests.

Signed-in carts are one document per line in the `cart` collection, keyed by
the owner's email. Guest carts travel in a cookie as base64url encoded JSON.
Both share the same add/merge/clamp rules through `CartStore`.
"""

import abc
import base64
import binascii
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pydantic import ValidationError

import config
import pricing
from catalog import get_product, products_by_id
from database import ensure_object_id
from schemas import CartLine, Customization
from stock import available_quantity, is_one_size, normalize_size, stock_for_size

logger = logging.getLogger(__name__)


class CartStore(abc.ABC):
    """Shared cart rules. Subclasses supply storage primitives."""

    def __init__(self, db):
        self.db = db

    # storage primitives
    @abc.abstractmethod
    def lines(self) -> List[Dict[str, Any]]:
        ...

    @abc.abstractmethod
    def _insert(self, line: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    def _update_quantity(self, line_id: str, quantity: int) -> None:
        ...

    @abc.abstractmethod
    def _delete(self, line_id: str) -> None:
        ...

    @abc.abstractmethod
    def clear(self) -> None:
        ...

    # rules
    def get_line(self, line_id: str) -> Dict[str, Any]:
        for line in self.lines():
            if line["line_id"] == line_id:
                return line
        raise HTTPException(status_code=404, detail="Cart item not found")

    def quantity_in_cart(self, product_id: int, size: str) -> int:
        return sum(
            int(line.get("quantity") or 0)
            for line in self.lines()
            if line["product_id"] == product_id and line.get("size") == size
        )

    def add(self, product_id: int, size: Optional[str], quantity: int,
            customization: Optional[Customization] = None) -> Dict[str, Any]:
        if quantity < 1:
            raise HTTPException(status_code=400, detail="Quantity must be at least 1")
        product = get_product(self.db, product_id)
        size = normalize_size(product, size)
        if customization and not product.get("customizable"):
            raise HTTPException(status_code=400, detail="This product cannot be customized")

        available = available_quantity(product, size, self.quantity_in_cart(product_id, size))
        one_size = is_one_size(product)
        if available == 0:
            raise HTTPException(
                status_code=409,
                detail="This item is out of stock" if one_size else "This size is out of stock",
            )
        if quantity > available:
            raise HTTPException(
                status_code=409,
                detail=f"Only {available} items available" if one_size
                else f"Only {available} items available in size {size}",
            )

        if customization is None:
            for line in self.lines():
                if line["product_id"] == product_id and line.get("size") == size and not line.get("is_customized"):
                    new_qty = int(line["quantity"]) + quantity
                    self._update_quantity(line["line_id"], new_qty)
                    return {**line, "quantity": new_qty}

        line = {
            "product_id": product_id,
            "quantity": quantity,
            "size": size,
            "is_customized": customization is not None,
            "customization_text": customization.text if customization else None,
            "custom_price": float(product.get("custom_price") or 0) if customization else 0,
        }
        return self._insert(line)

    def set_quantity(self, line_id: str, quantity: int) -> Optional[Dict[str, Any]]:
        line = self.get_line(line_id)
        if quantity <= 0:
            self._delete(line_id)
            return None
        if quantity > int(line.get("quantity") or 0):
            self._check_room(line, quantity)
        self._update_quantity(line_id, quantity)
        return {**line, "quantity": quantity}

    def change_quantity(self, line_id: str, delta: int) -> Optional[Dict[str, Any]]:
        line = self.get_line(line_id)
        return self.set_quantity(line_id, max(0, int(line.get("quantity") or 0) + delta))

    def _check_room(self, line: Dict[str, Any], quantity: int) -> None:
        # Other lines for the same product and size share the same stock
        product = self.db["product"].find_one({"product_id": line["product_id"]})
        if product is None:
            return
        others = self.quantity_in_cart(line["product_id"], line.get("size")) - int(line.get("quantity") or 0)
        if quantity > available_quantity(product, line.get("size"), others):
            raise HTTPException(status_code=409, detail="No more stock available for this size.")

    def remove(self, line_id: str) -> None:
        self.get_line(line_id)
        self._delete(line_id)


class UserCart(CartStore):
    def __init__(self, db, email: str):
        super().__init__(db)
        self.email = email

    @staticmethod
    def _to_line(doc: Dict[str, Any]) -> Dict[str, Any]:
        line = {k: v for k, v in doc.items() if k != "_id"}
        line["line_id"] = str(doc["_id"])
        return line

    def lines(self) -> List[Dict[str, Any]]:
        cursor = self.db["cart"].find({"owner_email": self.email}).sort("added_on", 1)
        return [self._to_line(doc) for doc in cursor]

    def _insert(self, line: Dict[str, Any]) -> Dict[str, Any]:
        doc = {**line, "owner_email": self.email, "added_on": datetime.now(timezone.utc)}
        res = self.db["cart"].insert_one(doc)
        doc["_id"] = res.inserted_id
        return self._to_line(doc)

    def _update_quantity(self, line_id: str, quantity: int) -> None:
        self.db["cart"].update_one(
            {"_id": ensure_object_id(line_id), "owner_email": self.email},
            {"$set": {"quantity": quantity, "updated_at": datetime.now(timezone.utc)}},
        )

    def _delete(self, line_id: str) -> None:
        self.db["cart"].delete_one({"_id": ensure_object_id(line_id), "owner_email": self.email})

    def delete_lines(self, line_ids: List[str]) -> None:
        oids = [ObjectId(i) for i in line_ids if ObjectId.is_valid(i)]
        if oids:
            self.db["cart"].delete_many({"_id": {"$in": oids}, "owner_email": self.email})

    def clear(self) -> None:
        self.db["cart"].delete_many({"owner_email": self.email})


class GuestCart(CartStore):
    def __init__(self, db, lines: Optional[List[Dict[str, Any]]] = None):
        super().__init__(db)
        self._lines = list(lines or [])

    @classmethod
    def from_cookie(cls, db, raw: Optional[str]) -> "GuestCart":
        return cls(db, decode_guest_cookie(raw))

    def lines(self) -> List[Dict[str, Any]]:
        return [dict(line) for line in self._lines]

    def _insert(self, line: Dict[str, Any]) -> Dict[str, Any]:
        line = {**line, "line_id": uuid.uuid4().hex[:12]}
        self._lines.append(line)
        return dict(line)

    def _update_quantity(self, line_id: str, quantity: int) -> None:
        for line in self._lines:
            if line["line_id"] == line_id:
                line["quantity"] = quantity

    def _delete(self, line_id: str) -> None:
        self._lines = [line for line in self._lines if line["line_id"] != line_id]

    def clear(self) -> None:
        self._lines = []

    def dump(self) -> str:
        return encode_guest_cookie(self._lines)


def encode_guest_cookie(lines: List[Dict[str, Any]]) -> str:
    raw = json.dumps(lines, separators=(",", ":")).encode("utf-8")
    # Padding is dropped so the value needs no cookie quoting
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_guest_cookie(raw: Optional[str]) -> List[Dict[str, Any]]:
    if not raw:
        return []
    raw = raw.strip('"')
    try:
        padded = raw + "=" * (-len(raw) % 4)
        parsed = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, binascii.Error, UnicodeError):
        logger.debug("Discarding unreadable guest cart cookie")
        return []
    if not isinstance(parsed, list):
        return []
    lines = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        item = {**item, "line_id": str(item.get("line_id") or uuid.uuid4().hex[:12])}
        try:
            line = CartLine(**item)
        except ValidationError:
            continue
        lines.append(line.model_dump(exclude={"owner_email", "added_on"}))
    return lines


def cart_summary(db, lines: List[Dict[str, Any]]) -> Dict[str, Any]:
    products = products_by_id(db, [line["product_id"] for line in lines])
    items = []
    for line in lines:
        product = products.get(line["product_id"])
        images = (product or {}).get("images") or []
        items.append({
            **{k: v for k, v in line.items() if k not in ("owner_email", "added_on", "updated_at")},
            "name": (product or {}).get("name"),
            "image": images[0] if images else None,
            "unit_price": pricing.unit_price(product, line),
            "line_total": pricing.line_total(product, line),
            "available": product is not None,
        })
    sub = pricing.subtotal(products, lines)
    shipping = config.SHIPPING_CHARGE if lines else 0
    return {
        "items": items,
        "item_count": sum(int(line.get("quantity") or 0) for line in lines),
        "subtotal": sub,
        "shipping": shipping,
        "total": pricing.order_total(sub, shipping=shipping),
    }


# ---------------- Pending actions ----------------

def replay_pending_action(db, email: str, action_type: str, product_id: int, quantity: int,
                          size: Optional[str]) -> Dict[str, Any]:
    """Run the action a guest started before being sent to sign in.

    ADD_TO_CART lands in the user's cart. BUY_NOW is validated and handed back
    so the client can go straight to checkout with that single item.
    """
    if action_type == "ADD_TO_CART":
        line = UserCart(db, email).add(product_id, size, quantity)
        return {"type": action_type, "line": line, "redirect_to": "/cart"}
    if action_type == "BUY_NOW":
        product = get_product(db, product_id)
        size = normalize_size(product, size)
        if quantity < 1 or quantity > stock_for_size(product, size):
            raise HTTPException(status_code=409, detail=f"Only {stock_for_size(product, size)} items available")
        return {
            "type": action_type,
            "buy_now": {"product_id": product_id, "quantity": quantity, "size": size},
            "redirect_to": "/checkout",
        }
    raise HTTPException(status_code=400, detail=f"Unknown action {action_type!r}")
