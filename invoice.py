"""
Invoice rendering.

`invoice_lines` and `invoice_totals` are the arithmetic; `render_invoice`
lays them out as a PDF with fpdf2. Orders are plain dicts as stored in (or
serialized from) the `order` collection, so every field is read leniently.
"""

from datetime import datetime
from typing import Any, Dict, List

from fpdf import FPDF
from fpdf.enums import XPos, YPos
from fpdf.fonts import FontFace

import config
import pricing

HEADINGS = ("Item Name", "Qty", "Price", "Total")


def format_money(value: float) -> str:
    value = pricing.as_number(value)
    if float(value).is_integer():
        return f"Rs. {int(value)}"
    return f"Rs. {value:.2f}"


def invoice_lines(order: Dict[str, Any]) -> List[Dict[str, Any]]:
    lines = []
    for item in order.get("items") or []:
        qty = int(item.get("quantity") or 0)
        price = pricing.as_number(item.get("unit_price"))
        lines.append({
            "name": item.get("name") or "Product",
            "size": item.get("size") or "",
            "quantity": qty,
            "unit_price": price,
            "line_total": price * qty,
            "customization_text": item.get("customization_text") if item.get("is_customized") else None,
        })
    return lines


def invoice_totals(order: Dict[str, Any]) -> Dict[str, float]:
    subtotal = sum(line["line_total"] for line in invoice_lines(order))
    shipping = pricing.as_number(order.get("shipping"))
    tax = pricing.as_number(order.get("tax"))
    discount = pricing.as_number(order.get("discount_amount"))
    total = order.get("total")
    grand_total = pricing.as_number(total) if total is not None else pricing.order_total(subtotal, discount, shipping, tax)
    return {
        "subtotal": subtotal,
        "shipping": shipping,
        "tax": tax,
        "discount": discount,
        "grand_total": grand_total,
    }


def order_date(order: Dict[str, Any]) -> str:
    created = order.get("created_at")
    if isinstance(created, str):
        try:
            created = datetime.fromisoformat(created.replace("Z", "+00:00"))
        except ValueError:
            created = None
    if not isinstance(created, datetime):
        created = datetime.now()
    return created.strftime("%d/%m/%Y")


def _safe(text: Any) -> str:
    # Core PDF fonts only cover latin-1
    text = str(text if text is not None else "")
    text = text.replace("’", "'").replace("–", "-").replace("₹", "Rs.")
    return text.encode("latin-1", "replace").decode("latin-1")


class InvoicePDF(FPDF):
    def footer(self):
        self.set_y(-12)
        self.set_font("helvetica", size=8)
        self.cell(0, 6, f"Page {self.page_no()}/{{nb}}", align="C")


def render_invoice(order: Dict[str, Any]) -> bytes:
    order_id = order.get("id") or order.get("order_id") or ""
    invoice_no = order.get("invoice_no") or order_id
    customer = order.get("customer") or {}
    totals = invoice_totals(order)

    pdf = InvoicePDF()
    pdf.set_margins(14, 14, 14)
    pdf.set_auto_page_break(auto=True, margin=18)
    pdf.add_page()

    def line(text: str, h: float = 6):
        pdf.cell(0, h, _safe(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    # Header
    pdf.set_font("helvetica", style="B", size=18)
    line(config.STORE_NAME.upper(), 9)
    pdf.set_font("helvetica", size=11)
    line(config.STORE_TAGLINE)
    line(config.STORE_LOCATION)
    line(f"Email: {config.SUPPORT_EMAIL}")
    line(f"Phone: {config.SUPPORT_PHONE}")
    pdf.set_line_width(0.5)
    pdf.line(14, pdf.get_y() + 2, 196, pdf.get_y() + 2)
    pdf.ln(6)

    # Invoice details
    line(f"Invoice No: INV-{invoice_no}")
    line(f"Order ID: ORD-{order_id}")
    line(f"Order Date: {order_date(order)}")
    line(f"Payment Method: {order.get('payment_method') or 'Razorpay'}")
    line(f"Payment Status: {(order.get('payment_status') or 'paid').capitalize()}")
    pdf.ln(4)

    # Billed to
    pdf.set_font("helvetica", style="B", size=12)
    line("Billed To")
    pdf.set_font("helvetica", size=11)
    line(f"Name: {customer.get('name', '')}")
    line(f"Email: {customer.get('email', '')}")
    line(f"Phone: {customer.get('phone', '')}")
    line("Shipping Address:")
    pdf.multi_cell(
        0, 6,
        _safe(f"{customer.get('address', '')}, {customer.get('state_city', '')} - {customer.get('pincode', '')}, India"),
        new_x=XPos.LMARGIN, new_y=YPos.NEXT,
    )
    pdf.ln(4)

    # Items
    pdf.set_font("helvetica", size=10)
    heading_style = FontFace(emphasis="BOLD", color=(0, 0, 0), fill_color=(220, 220, 220))
    with pdf.table(
        col_widths=(92, 20, 35, 35),
        text_align=("LEFT", "CENTER", "RIGHT", "RIGHT"),
        headings_style=heading_style,
    ) as table:
        row = table.row()
        for heading in HEADINGS:
            row.cell(heading)
        for item in invoice_lines(order):
            name = item["name"]
            if item["size"]:
                name = f"{name} ({item['size']})"
            if item["customization_text"]:
                name = f"{name} - Custom: {item['customization_text']}"
            row = table.row()
            row.cell(_safe(name))
            row.cell(str(item["quantity"]))
            row.cell(format_money(item["unit_price"]))
            row.cell(format_money(item["line_total"]))
    pdf.ln(6)

    # Breakdown
    pdf.set_font("helvetica", size=11)
    line(f"Subtotal: {format_money(totals['subtotal'])}")
    line(f"Shipping: {format_money(totals['shipping'])}{' (Free)' if totals['shipping'] == 0 else ''}")
    line(f"Tax: {format_money(totals['tax'])}")
    if totals["discount"] > 0:
        code = order.get("discount_code")
        label = f"Discount ({code})" if code else "Discount"
        line(f"{label}: -{format_money(totals['discount'])}")
    pdf.set_font("helvetica", style="B", size=11)
    line(f"Grand Total: {format_money(totals['grand_total'])}", 8)
    pdf.ln(4)

    # Delivery, returns, footer
    pdf.set_font("helvetica", size=11)
    line("Estimated Delivery: 2-4 working days")
    line(f"Courier Partner: {order.get('courier_partner') or config.COURIER_PARTNER}")
    if order.get("tracking_id"):
        line(f"Tracking ID: {order['tracking_id']}")
    pdf.ln(4)
    pdf.set_font("helvetica", size=10)
    pdf.multi_cell(
        0, 5,
        "Easy returns within 7 days of delivery. Product must be unused and in original packaging.",
        new_x=XPos.LMARGIN, new_y=YPos.NEXT,
    )
    pdf.ln(2)
    pdf.multi_cell(
        0, 5,
        _safe(f"Thank you for shopping with {config.STORE_NAME}. For support, WhatsApp us at {config.SUPPORT_PHONE}."),
        new_x=XPos.LMARGIN, new_y=YPos.NEXT,
    )

    return bytes(pdf.output())


def invoice_filename(order: Dict[str, Any]) -> str:
    return f"INVOICE_{order.get('id') or order.get('order_id') or 'order'}.pdf"
