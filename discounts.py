import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from database import create_document, serialize_doc
from schemas import DiscountCode

logger = logging.getLogger(__name__)


def lookup_discount(db, code: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the active discount for `code` (case-insensitive), or None."""
    if not code or not code.strip():
        return None
    doc = db["discountcode"].find_one({"code": code.strip().upper(), "active": True})
    if not doc:
        logger.info("Discount code rejected: %s", code.strip().upper())
        return None
    return doc


def list_discounts(db) -> List[Dict[str, Any]]:
    return [serialize_doc(d) for d in db["discountcode"].find().sort("code", 1)]


def create_discount(db, payload: DiscountCode) -> Dict[str, Any]:
    if db["discountcode"].find_one({"code": payload.code}):
        raise HTTPException(status_code=409, detail="Discount code already exists")
    try:
        create_document(db, "discountcode", payload)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Discount code already exists")
    logger.info("Discount code %s created (%s%%)", payload.code, payload.percent)
    return serialize_doc(db["discountcode"].find_one({"code": payload.code}))


def delete_discount(db, code: str) -> None:
    res = db["discountcode"].delete_one({"code": code.strip().upper()})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Discount code not found")
    logger.info("Discount code %s deleted", code.strip().upper())
