"""
Checkout: quoting a cart and turning a successful payment into an order.

The payment widget runs in the browser. The client asks for a quote to learn
the amount, opens the widget, and posts the payment id back to
`place_order`. Orders are keyed by payment id so a repeated callback returns
the order that already exists instead of charging stock twice.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

import config
import pricing
from admin import is_admin
from cart import CartStore, UserCart, cart_summary
from catalog import get_product, products_by_id
from database import create_document, serialize_doc
from discounts import lookup_discount
from schemas import Customer, Customization, Order, OrderLine
from stock import check_lines, normalize_size, release_stock, reserve_stock

logger = logging.getLogger(__name__)

BUY_NOW_LINE_ID = "buy-now"


def validate_customer(details: Dict[str, Any]) -> Customer:
    cleaned = {k: str(details.get(k) or "").strip() for k in Customer.model_fields}
    cleaned["phone"] = re.sub(r"\D", "", cleaned["phone"])
    cleaned["pincode"] = re.sub(r"\D", "", cleaned["pincode"])

    missing = [k for k, v in cleaned.items() if not v]
    if missing:
        raise HTTPException(status_code=400, detail=f"Please fill all required fields: {', '.join(missing)}")
    if "@" not in cleaned["email"]:
        raise HTTPException(status_code=400, detail="Invalid email address")
    if len(cleaned["phone"]) != 10:
        raise HTTPException(status_code=400, detail="Phone number must have 10 digits")
    if len(cleaned["pincode"]) != 6:
        raise HTTPException(status_code=400, detail="Pincode must have 6 digits")
    return Customer(**cleaned)


def buy_now_line(db, product_id: int, quantity: int, size: Optional[str],
                 customization: Optional[Customization] = None) -> Dict[str, Any]:
    product = get_product(db, product_id)
    if customization and not product.get("customizable"):
        raise HTTPException(status_code=400, detail="This product cannot be customized")
    return {
        "line_id": BUY_NOW_LINE_ID,
        "product_id": product_id,
        "quantity": max(1, int(quantity or 1)),
        "size": normalize_size(product, size),
        "is_customized": customization is not None,
        "customization_text": customization.text if customization else None,
        "custom_price": float(product.get("custom_price") or 0) if customization else 0,
    }


def _price(db, lines: List[Dict[str, Any]], discount_code: Optional[str]) -> Tuple[Dict[int, Dict[str, Any]], Dict[str, Any]]:
    products = products_by_id(db, [line["product_id"] for line in lines])
    sub = pricing.subtotal(products, lines)

    discount = lookup_discount(db, discount_code) if discount_code else None
    percent = float(discount["percent"]) if discount else 0.0
    discount_amount = pricing.discount_amount(sub, percent)
    shipping = config.SHIPPING_CHARGE if lines else 0
    tax = config.TAX_AMOUNT if lines else 0
    total = pricing.order_total(sub, discount_amount, shipping, tax)

    quote = {
        **cart_summary(db, lines),
        "subtotal": sub,
        "discount_code": discount["code"] if discount else "",
        "discount_valid": (discount is not None) if discount_code else None,
        "discount_percent": percent,
        "discount_amount": discount_amount,
        "shipping": shipping,
        "tax": tax,
        "total": total,
        "amount_minor": pricing.to_minor_units(total),
        "currency": config.CURRENCY,
        "payment_key": config.RAZORPAY_KEY_ID,
        "stock_issues": check_lines(products, lines),
    }
    return products, quote


def build_quote(db, lines: List[Dict[str, Any]], discount_code: Optional[str] = None) -> Dict[str, Any]:
    return _price(db, lines, discount_code)[1]


def _order_lines(products: Dict[int, Dict[str, Any]], lines: List[Dict[str, Any]]) -> List[OrderLine]:
    out = []
    for line in lines:
        product = products[line["product_id"]]
        images = product.get("images") or []
        out.append(OrderLine(
            product_id=line["product_id"],
            name=product.get("name") or f"Item {line['product_id']}",
            size=line.get("size") or "",
            quantity=int(line["quantity"]),
            unit_price=pricing.unit_price(product, line),
            line_total=pricing.line_total(product, line),
            is_customized=bool(line.get("is_customized")),
            customization_text=line.get("customization_text"),
            custom_price=float(line.get("custom_price") or 0),
            image=images[0] if images else None,
        ))
    return out


def find_order_by_payment(db, payment_id: str) -> Optional[Dict[str, Any]]:
    return db["order"].find_one({"payment_id": payment_id})


def _replayed(db, existing: Dict[str, Any], user_email: Optional[str]) -> Dict[str, Any]:
    # A payment id only returns its order to the buyer who placed it
    if existing.get("user_email") != user_email and not is_admin(db, user_email):
        logger.warning("Payment %s replayed by a different caller", existing.get("payment_id"))
        raise HTTPException(status_code=409, detail="Payment already recorded for another order")
    return serialize_doc(existing)


def place_order(db, *, lines: List[Dict[str, Any]], customer: Dict[str, Any], payment_id: str,
                user_email: Optional[str] = None, discount_code: Optional[str] = None,
                buy_now: bool = False, store: Optional[CartStore] = None) -> Tuple[Dict[str, Any], bool]:
    """Record a paid order. Returns (order, created)."""
    payment_id = (payment_id or "").strip()
    if not payment_id:
        raise HTTPException(status_code=400, detail="Missing payment id")

    existing = find_order_by_payment(db, payment_id)
    if existing:
        logger.info("Payment %s already recorded as order %s", payment_id, existing["_id"])
        return _replayed(db, existing, user_email), False

    if not lines:
        raise HTTPException(status_code=400, detail="Cart is empty")
    valid_customer = validate_customer(customer)

    products, quote = _price(db, lines, discount_code)
    missing = [line["product_id"] for line in lines if line["product_id"] not in products]
    if missing:
        raise HTTPException(status_code=404, detail=f"Product {missing[0]} not found")
    if quote["stock_issues"]:
        logger.error("Payment %s received but stock is short: %s", payment_id, "; ".join(quote["stock_issues"]))
        raise HTTPException(
            status_code=409,
            detail="Some items are out of stock or exceed available quantity: " + "; ".join(quote["stock_issues"]),
        )

    order = Order(
        items=_order_lines(products, lines),
        customer=valid_customer,
        subtotal=quote["subtotal"],
        discount_code=quote["discount_code"],
        discount_percent=quote["discount_percent"],
        discount_amount=quote["discount_amount"],
        shipping=quote["shipping"],
        tax=quote["tax"],
        total=quote["total"],
        currency=config.CURRENCY,
        payment_id=payment_id,
        courier_partner=config.COURIER_PARTNER,
        user_email=user_email,
        buy_now=buy_now,
    )
    try:
        reserve_stock(db, products, lines)
    except HTTPException:
        logger.error("Payment %s received but stock could not be reserved", payment_id)
        raise

    try:
        order_id = create_document(db, "order", order)
    except DuplicateKeyError:
        # Another request recorded this payment first
        release_stock(db, products, lines)
        return _replayed(db, find_order_by_payment(db, payment_id), user_email), False
    except Exception:
        release_stock(db, products, lines)
        raise

    logger.info("Order %s placed: %d lines, total %s, payment %s", order_id, len(lines), order.total, payment_id)

    if not buy_now and store is not None:
        try:
            if isinstance(store, UserCart):
                store.delete_lines([line["line_id"] for line in lines])
            else:
                store.clear()
        except Exception:
            logger.exception("Error clearing cart after order %s", order_id)

    return serialize_doc(db["order"].find_one({"payment_id": payment_id})), True
