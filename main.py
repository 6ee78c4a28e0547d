import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

import config
import database
from admin import current_email, is_admin, require_admin, require_user
from cart import CartStore, GuestCart, UserCart, cart_summary, replay_pending_action
from catalog import (
    get_product,
    get_product_by_name,
    list_categories,
    list_products,
    search_inventory,
    seed_products,
)
from catalog import create_product as catalog_create_product
from catalog import delete_product as catalog_delete_product
from catalog import update_product as catalog_update_product
from checkout import build_quote, buy_now_line, place_order
from database import get_db, serialize_doc
from discounts import create_discount, delete_discount, list_discounts, lookup_discount
from invoice import invoice_filename, render_invoice
from mailer import send_invoice_email, send_invoice_email_quietly
from orders import buy_again, get_order, list_all_orders, list_user_orders, update_order
from schemas import Customization, DiscountCode, ProductUpdate
from stock import available_quantity, normalize_size

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    yield


app = FastAPI(title="Clothing Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

GUEST_CART_MAX_AGE = 60 * 60 * 24 * 30


# Helpers
def open_cart(request: Request, db, email: Optional[str]) -> CartStore:
    if email:
        return UserCart(db, email)
    return GuestCart.from_cookie(db, request.cookies.get(config.GUEST_CART_COOKIE))


def persist_cart(response: Response, cart: CartStore) -> None:
    if not isinstance(cart, GuestCart):
        return
    if cart.lines():
        response.set_cookie(
            config.GUEST_CART_COOKIE,
            cart.dump(),
            max_age=GUEST_CART_MAX_AGE,
            path="/",
            samesite="lax",
        )
    else:
        response.delete_cookie(config.GUEST_CART_COOKIE, path="/")


@app.get("/")
def root():
    return {"message": "Clothing Storefront Backend is running"}


@app.get("/api/me")
def me(email: Optional[str] = Depends(current_email), db=Depends(get_db)):
    return {"email": email, "is_admin": is_admin(db, email)}


# ---------------- Products ----------------
@app.get("/api/products")
def products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = Query(None, description="price_asc | price_desc | newest | name"),
    db=Depends(get_db),
):
    items = list_products(db, category=category, search=search, sort=sort)
    return {"items": items, "count": len(items)}


@app.get("/api/categories")
def categories(db=Depends(get_db)):
    return list_categories(db)


@app.get("/api/products/by-name/{name}")
def product_by_name(name: str, db=Depends(get_db)):
    return serialize_doc(get_product_by_name(db, name))


@app.get("/api/products/{product_id}")
def product_detail(product_id: int, db=Depends(get_db)):
    return serialize_doc(get_product(db, product_id))


@app.get("/api/products/{product_id}/availability")
def product_availability(
    product_id: int,
    request: Request,
    size: Optional[str] = None,
    email: Optional[str] = Depends(current_email),
    db=Depends(get_db),
):
    product = get_product(db, product_id)
    size = normalize_size(product, size)
    in_cart = open_cart(request, db, email).quantity_in_cart(product_id, size)
    return {
        "product_id": product_id,
        "size": size,
        "in_cart": in_cart,
        "available": available_quantity(product, size, in_cart),
    }


# ---------------- Cart ----------------
class CartAdd(BaseModel):
    product_id: int
    size: Optional[str] = None
    quantity: int = Field(1, ge=1)
    customization: Optional[Customization] = None


class CartUpdate(BaseModel):
    quantity: Optional[int] = None
    delta: Optional[int] = None


class PendingAction(BaseModel):
    type: str = Field(..., description="ADD_TO_CART | BUY_NOW")
    product_id: int
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None


@app.get("/api/cart")
def get_cart(request: Request, email: Optional[str] = Depends(current_email), db=Depends(get_db)):
    cart = open_cart(request, db, email)
    return cart_summary(db, cart.lines())


@app.post("/api/cart/items", status_code=201)
def add_cart_item(
    payload: CartAdd,
    request: Request,
    response: Response,
    email: Optional[str] = Depends(current_email),
    db=Depends(get_db),
):
    cart = open_cart(request, db, email)
    line = cart.add(payload.product_id, payload.size, payload.quantity, payload.customization)
    persist_cart(response, cart)
    return line


@app.patch("/api/cart/items/{line_id}")
def update_cart_item(
    line_id: str,
    payload: CartUpdate,
    request: Request,
    response: Response,
    email: Optional[str] = Depends(current_email),
    db=Depends(get_db),
):
    cart = open_cart(request, db, email)
    if payload.delta is not None:
        line = cart.change_quantity(line_id, payload.delta)
    elif payload.quantity is not None:
        line = cart.set_quantity(line_id, payload.quantity)
    else:
        raise HTTPException(status_code=400, detail="Provide quantity or delta")
    persist_cart(response, cart)
    return {"line": line, "removed": line is None}


@app.delete("/api/cart/items/{line_id}")
def remove_cart_item(
    line_id: str,
    request: Request,
    response: Response,
    email: Optional[str] = Depends(current_email),
    db=Depends(get_db),
):
    cart = open_cart(request, db, email)
    cart.remove(line_id)
    persist_cart(response, cart)
    return {"ok": True}


@app.delete("/api/cart")
def clear_cart(
    request: Request,
    response: Response,
    email: Optional[str] = Depends(current_email),
    db=Depends(get_db),
):
    cart = open_cart(request, db, email)
    cart.clear()
    persist_cart(response, cart)
    return {"ok": True}


@app.post("/api/cart/pending-action")
def run_pending_action(payload: PendingAction, email: str = Depends(require_user), db=Depends(get_db)):
    return replay_pending_action(db, email, payload.type, payload.product_id, payload.quantity, payload.size)


# ---------------- Discount codes ----------------
class DiscountCheck(BaseModel):
    code: str


@app.post("/api/discount-codes/validate")
def validate_discount(payload: DiscountCheck, db=Depends(get_db)):
    discount = lookup_discount(db, payload.code)
    if not discount:
        return {"valid": False, "code": payload.code.strip().upper(), "percent": 0}
    return {"valid": True, "code": discount["code"], "percent": discount["percent"]}


# ---------------- Checkout / Orders ----------------
class BuyNowItem(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    customization: Optional[Customization] = None


class QuoteRequest(BaseModel):
    discount_code: Optional[str] = None
    buy_now: Optional[BuyNowItem] = None


class PlaceOrderRequest(BaseModel):
    customer: Dict[str, Any]
    payment_id: str
    discount_code: Optional[str] = None
    buy_now: Optional[BuyNowItem] = None


def checkout_lines(db, cart: CartStore, buy_now: Optional[BuyNowItem]):
    if buy_now is not None:
        return [buy_now_line(db, buy_now.product_id, buy_now.quantity, buy_now.size, buy_now.customization)]
    return cart.lines()


@app.post("/api/checkout/quote")
def checkout_quote(
    payload: QuoteRequest,
    request: Request,
    email: Optional[str] = Depends(current_email),
    db=Depends(get_db),
):
    cart = open_cart(request, db, email)
    lines = checkout_lines(db, cart, payload.buy_now)
    return build_quote(db, lines, payload.discount_code)


@app.post("/api/checkout/place", status_code=201)
def checkout_place(
    payload: PlaceOrderRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    email: Optional[str] = Depends(current_email),
    db=Depends(get_db),
):
    cart = open_cart(request, db, email)
    lines = checkout_lines(db, cart, payload.buy_now)
    order, created = place_order(
        db,
        lines=lines,
        customer=payload.customer,
        payment_id=payload.payment_id,
        user_email=email,
        discount_code=payload.discount_code,
        buy_now=payload.buy_now is not None,
        store=cart,
    )
    if created:
        persist_cart(response, cart)
        # Fire-and-forget: the order stands even if the email never leaves
        background_tasks.add_task(send_invoice_email_quietly, order, order["customer"]["email"])
    else:
        response.status_code = 200
    return {"order": order, "created": created}


@app.get("/api/orders")
def my_orders(email: str = Depends(require_user), db=Depends(get_db)):
    return list_user_orders(db, email)


@app.get("/api/orders/{order_id}")
def order_detail(order_id: str, email: str = Depends(require_user), db=Depends(get_db)):
    return get_order(db, order_id, email)


@app.get("/api/orders/{order_id}/invoice")
def order_invoice(order_id: str, email: str = Depends(require_user), db=Depends(get_db)):
    order = get_order(db, order_id, email)
    return Response(
        content=render_invoice(order),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice_filename(order)}"'},
    )


@app.post("/api/orders/{order_id}/buy-again")
def order_buy_again(order_id: str, email: str = Depends(require_user), db=Depends(get_db)):
    return buy_again(db, order_id, email)


class SendInvoiceRequest(BaseModel):
    order_id: str
    send_to: Optional[str] = None


@app.post("/api/send-invoice")
def send_invoice(payload: SendInvoiceRequest, email: str = Depends(require_user), db=Depends(get_db)):
    order = get_order(db, payload.order_id, email)
    recipient = None
    if payload.send_to:
        # Customers only resend to the address on the order
        if not is_admin(db, email):
            raise HTTPException(status_code=403, detail="Admin access required")
        recipient = payload.send_to.strip()
    try:
        send_invoice_email(order, recipient)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("send-invoice error")
        raise HTTPException(status_code=500, detail=str(e) or "Failed")
    return {"ok": True}


# ---------------- Admin ----------------
class OrderUpdate(BaseModel):
    status: Optional[str] = None
    tracking_id: Optional[str] = None


@app.get("/api/admin/inventory")
def admin_inventory(tag: Optional[str] = None, _: str = Depends(require_admin), db=Depends(get_db)):
    return search_inventory(db, tag)


@app.post("/api/admin/inventory", status_code=201)
def admin_create_product(
    payload: Dict[str, Any],
    _: str = Depends(require_admin),
    db=Depends(get_db),
):
    payload.pop("product_id", None)
    try:
        return serialize_doc(catalog_create_product(db, payload))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.put("/api/admin/inventory/{product_id}")
def admin_update_product(
    product_id: int,
    payload: ProductUpdate,
    _: str = Depends(require_admin),
    db=Depends(get_db),
):
    try:
        return serialize_doc(catalog_update_product(db, product_id, payload))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.delete("/api/admin/inventory/{product_id}")
def admin_delete_product(product_id: int, _: str = Depends(require_admin), db=Depends(get_db)):
    catalog_delete_product(db, product_id)
    return {"deleted": True}


@app.get("/api/admin/orders")
def admin_orders(
    status: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    _: str = Depends(require_admin),
    db=Depends(get_db),
):
    return list_all_orders(db, status=status, limit=limit)


@app.patch("/api/admin/orders/{order_id}")
def admin_update_order(
    order_id: str,
    payload: OrderUpdate,
    _: str = Depends(require_admin),
    db=Depends(get_db),
):
    return update_order(db, order_id, status=payload.status, tracking_id=payload.tracking_id)


@app.get("/api/admin/discount-codes")
def admin_discounts(_: str = Depends(require_admin), db=Depends(get_db)):
    return list_discounts(db)


@app.post("/api/admin/discount-codes", status_code=201)
def admin_create_discount(payload: DiscountCode, _: str = Depends(require_admin), db=Depends(get_db)):
    return create_discount(db, payload)


@app.delete("/api/admin/discount-codes/{code}")
def admin_delete_discount(code: str, _: str = Depends(require_admin), db=Depends(get_db)):
    delete_discount(db, code)
    return {"deleted": True}


# ---------------- Seed sample data ----------------
@app.post("/api/seed")
def seed(db=Depends(get_db)):
    return seed_products(db)


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            try:
                response["collections"] = database.db.list_collection_names()[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
