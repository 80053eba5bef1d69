# Overview: Plain-text order summary for manual relay through WhatsApp.

"""
Order notification formatting.

format_order_message is pure: it reads the order (and its user) and returns
text. Storing the text on the order and the wa.me link live in order_service.
"""
from __future__ import annotations

from urllib.parse import quote

NOT_AVAILABLE = "N/A"

# Punctuation left unescaped in the wa.me text parameter
URI_COMPONENT_SAFE = "-_.!~*'()"

DEFAULT_ORDER_TEMPLATE = """🛒 *New Order from {customer_name}*

📋 *Order Items:*
{items}

💰 *Order Summary:*
Order Number: {order_number}
Total Amount: {total}

📞 *Contact Information:*
Name: {contact_name}
Email: {contact_email}
Phone: {contact_phone}

📍 *Delivery Address:*
{street}, {city}, {state} {zip_code}

---
*Order placed via {store_name}*"""

ITEM_LINE_TEMPLATE = "• {name} x{quantity} - {unit_price}"


def format_money(cents: int) -> str:
    """1234567 -> '$12,345.67'"""
    sign = "-" if cents < 0 else ""
    dollars, rem = divmod(abs(cents), 100)
    return f"{sign}${dollars:,}.{rem:02d}"


def _or_na(value) -> str:
    if value is None or value == "":
        return NOT_AVAILABLE
    return str(value)


def format_order_message(order, template: str = DEFAULT_ORDER_TEMPLATE, *, store_name: str = "Esperança de Amor E-commerce") -> str:
    user = order.user
    name = user.name if user and user.name else None
    address = order.shipping_address

    items = "\n".join(
        ITEM_LINE_TEMPLATE.format(
            name=item.name,
            quantity=item.quantity,
            unit_price=format_money(item.unit_price_cents),
        )
        for item in order.items
    )

    return template.format(
        customer_name=name or "Customer",
        items=items,
        order_number=_or_na(order.order_number),
        total=format_money(order.total_amount_cents or 0),
        contact_name=_or_na(name),
        contact_email=_or_na(user.email if user else None),
        contact_phone=_or_na(address.get("phone")),
        street=_or_na(address.get("street")),
        city=_or_na(address.get("city")),
        state=_or_na(address.get("state")),
        zip_code=_or_na(address.get("zip_code")),
        store_name=store_name,
    )


def build_whatsapp_link(phone_number: str, message: str) -> str:
    return f"https://wa.me/{phone_number}?text={quote(message, safe=URI_COMPONENT_SAFE)}"
