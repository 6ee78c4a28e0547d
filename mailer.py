"""Invoice emails over SMTP (SSL, Gmail by default)."""

import html
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Dict, Optional

from fastapi import HTTPException

import config
from invoice import format_money, invoice_filename, invoice_lines, invoice_totals, render_invoice

logger = logging.getLogger(__name__)

PINK = "#f8c1da"


def email_configured() -> bool:
    return bool(config.EMAIL_USER and config.EMAIL_PASS)


def _totals_text(totals: Dict[str, float]) -> str:
    lines = [
        f"Subtotal: {format_money(totals['subtotal'])}",
        f"Shipping: {format_money(totals['shipping'])}{' (Free)' if totals['shipping'] == 0 else ''}",
        f"Tax: {format_money(totals['tax'])}",
    ]
    if totals["discount"] > 0:
        lines.append(f"Discount: -{format_money(totals['discount'])}")
    lines.append(f"Grand Total: {format_money(totals['grand_total'])}")
    return "\n".join(lines)


def _html_body(order_ref: str, items, totals: Dict[str, float]) -> str:
    rows = []
    for index, item in enumerate(items):
        bg = "#fffafa" if index % 2 == 0 else "#ffffff"
        cell = f"padding:8px 6px;border-bottom:1px solid {PINK};"
        rows.append(
            f'<tr style="background:{bg};">'
            f'<td style="{cell}">{html.escape(item["name"])}</td>'
            f'<td style="{cell}text-align:center;">{item["quantity"]}</td>'
            f'<td style="{cell}text-align:right;">{format_money(item["unit_price"])}</td>'
            f'<td style="{cell}text-align:right;">{format_money(item["line_total"])}</td>'
            "</tr>"
        )
    if not rows:
        rows.append('<tr><td colspan="4" style="padding:8px 6px;text-align:center;color:#777;">(No items found)</td></tr>')

    summary = "<br/>".join(
        f"{label}: <strong>{html.escape(value)}</strong>"
        for label, value in (row.split(": ", 1) for row in _totals_text(totals).splitlines())
    )
    store = html.escape(config.STORE_NAME)
    return (
        '<div style="font-family: system-ui, sans-serif; font-size: 14px; color: #333;">'
        f'<div style="background:#ffe6f0;padding:16px;border-radius:12px 12px 0 0;border:1px solid {PINK};border-bottom:0;">'
        '<h2 style="margin:0;color:#d81b60;">Thank you for your order</h2>'
        f'<p style="margin:4px 0 0 0;color:#5a0830;">{store}</p>'
        "</div>"
        f'<div style="border:1px solid {PINK};border-top:0;padding:16px;border-radius:0 0 12px 12px;background:#fffafa;">'
        f'<p style="margin-top:0;">Order <strong>#{html.escape(order_ref)}</strong> has been received.</p>'
        '<p style="margin-bottom:8px;"><strong>Order summary</strong></p>'
        f'<table style="border-collapse:collapse;width:100%;font-size:13px;background:#ffffff;border:1px solid {PINK};">'
        '<thead><tr style="background:#ffe6f0;color:#5a0830;">'
        '<th style="padding:8px 6px;text-align:left;">Item</th>'
        '<th style="padding:8px 6px;text-align:center;">Qty</th>'
        '<th style="padding:8px 6px;text-align:right;">Price</th>'
        '<th style="padding:8px 6px;text-align:right;">Total</th>'
        "</tr></thead>"
        f"<tbody>{''.join(rows)}</tbody></table>"
        f'<p style="margin-top:12px;">{summary}</p>'
        '<p style="margin-top:12px;">Your invoice PDF is attached to this email.</p>'
        '<p style="margin-top:12px;font-size:12px;color:#777;">If you have any questions, just reply to this email.</p>'
        "</div></div>"
    )


def build_invoice_email(order: Dict[str, Any], recipient: str) -> EmailMessage:
    order_ref = str(order.get("id") or order.get("order_id") or "")
    items = invoice_lines(order)
    totals = invoice_totals(order)

    plain_items = "\n".join(
        f"{it['name']} | Qty: {it['quantity']} | Price: {format_money(it['unit_price'])} | Total: {format_money(it['line_total'])}"
        for it in items
    )

    msg = EmailMessage()
    msg["From"] = formataddr((config.SENDER_NAME, config.EMAIL_USER or ""))
    msg["To"] = recipient
    msg["Subject"] = f"Your {config.STORE_NAME} Order {order_ref}"
    msg.set_content(
        f"Thank you for shopping with {config.STORE_NAME}.\n\n"
        f"Order: {order_ref}\n\n"
        f"Items (Name | Qty | Price | Total):\n{plain_items}\n\n"
        f"{_totals_text(totals)}\n\n"
        "Your invoice is attached as a PDF."
    )
    msg.add_alternative(_html_body(order_ref, items, totals), subtype="html")
    msg.add_attachment(
        render_invoice(order),
        maintype="application",
        subtype="pdf",
        filename=invoice_filename(order),
    )
    return msg


def _ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    if config.SMTP_ALLOW_INSECURE:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def send_invoice_email(order: Dict[str, Any], recipient: Optional[str] = None) -> None:
    """Send the invoice, raising HTTPException when it cannot be sent."""
    recipient = recipient or (order.get("customer") or {}).get("email")
    if not recipient:
        raise HTTPException(status_code=400, detail="No recipient")
    if not email_configured():
        raise HTTPException(status_code=500, detail="Email not configured")

    msg = build_invoice_email(order, recipient)
    with smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, context=_ssl_context(), timeout=15) as smtp:
        smtp.login(config.EMAIL_USER, config.EMAIL_PASS)
        smtp.send_message(msg)
    logger.info("Invoice email sent for order %s to %s", order.get("id"), recipient)


def send_invoice_email_quietly(order: Dict[str, Any], recipient: Optional[str] = None) -> None:
    """Background-task variant: failures are logged, never raised."""
    try:
        send_invoice_email(order, recipient)
    except HTTPException as e:
        logger.warning("Invoice email skipped for order %s: %s", order.get("id"), e.detail)
    except Exception:
        logger.exception("Failed to send invoice email for order %s", order.get("id"))
