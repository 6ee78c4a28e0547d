import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo import DESCENDING

from admin import is_admin
from cart import UserCart
from database import ensure_object_id, serialize_doc
from schemas import ORDER_STATUSES, Customization

logger = logging.getLogger(__name__)


def list_user_orders(db, email: str) -> List[Dict[str, Any]]:
    cursor = db["order"].find({"user_email": email}).sort("created_at", DESCENDING)
    return [serialize_doc(o) for o in cursor]


def list_all_orders(db, status: Optional[str] = None, limit: int = 200) -> List[Dict[str, Any]]:
    filt: Dict[str, Any] = {}
    if status:
        filt["status"] = status
    cursor = db["order"].find(filt).sort("created_at", DESCENDING).limit(limit)
    return [serialize_doc(o) for o in cursor]


def get_order(db, order_id: str, email: Optional[str]) -> Dict[str, Any]:
    order = db["order"].find_one({"_id": ensure_object_id(order_id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("user_email") != email and not is_admin(db, email):
        # Hide other customers' orders
        raise HTTPException(status_code=404, detail="Order not found")
    return serialize_doc(order)


def update_order(db, order_id: str, status: Optional[str] = None,
                 tracking_id: Optional[str] = None) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    if status is not None:
        if status not in ORDER_STATUSES:
            raise HTTPException(status_code=400, detail=f"Status must be one of {', '.join(ORDER_STATUSES)}")
        updates["status"] = status
    if tracking_id is not None:
        updates["tracking_id"] = tracking_id.strip()
    oid = ensure_object_id(order_id)
    if updates:
        res = db["order"].update_one({"_id": oid}, {"$set": updates})
        if res.matched_count == 0:
            raise HTTPException(status_code=404, detail="Order not found")
        logger.info("Order %s updated: %s", order_id, updates)
    order = db["order"].find_one({"_id": oid})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return serialize_doc(order)


def buy_again(db, order_id: str, email: str) -> Dict[str, Any]:
    """Put every line of a past order back into the user's cart.

    Lines that no longer fit the stock are reported instead of failing the
    whole request.
    """
    order = get_order(db, order_id, email)
    cart = UserCart(db, email)
    added, skipped = [], []
    for item in order.get("items") or []:
        customization = None
        if item.get("is_customized") and item.get("customization_text"):
            customization = Customization(text=item["customization_text"])
        try:
            added.append(cart.add(item["product_id"], item.get("size"), int(item["quantity"]), customization))
        except HTTPException as e:
            skipped.append({"product_id": item["product_id"], "size": item.get("size"), "reason": e.detail})
    return {"added": added, "skipped": skipped}
