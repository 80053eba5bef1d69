"""
WhatsApp order summary tests.

format_order_message is pure, so these build transient Order objects
without touching the database.
"""

import pytest

from storefront.models import Order, OrderItem, User
from storefront.services.notification_service import (
    NOT_AVAILABLE,
    build_whatsapp_link,
    format_money,
    format_order_message,
)


def _order(user=None, **address):
    shipping = {
        "shipping_street": "Rua Principal 123",
        "shipping_city": "Luanda",
        "shipping_state": "Luanda",
        "shipping_zip_code": "1000",
        "shipping_country": "Angola",
        "shipping_phone": "244922000111",
    }
    shipping.update(address)
    order = Order(
        order_number="EA202405010001",
        total_amount_cents=2500,
        items=[
            OrderItem(name="Vase", unit_price_cents=1000, quantity=2, total_cents=2000),
            OrderItem(name="Lamp", unit_price_cents=500, quantity=1, total_cents=500),
        ],
        **shipping,
    )
    order.user = user
    return order


@pytest.fixture
def buyer():
    return User(name="Ana Silva", email="ana@example.com")


class TestFormatMoney:

    @pytest.mark.parametrize(
        "cents,expected",
        [
            (0, "$0.00"),
            (5, "$0.05"),
            (2500, "$25.00"),
            (123456789, "$1,234,567.89"),
            (-150, "-$1.50"),
        ],
    )
    def test_format(self, cents, expected):
        assert format_money(cents) == expected


class TestFormatOrderMessage:

    def test_contains_items_and_totals(self, buyer):
        message = format_order_message(_order(buyer), store_name="Test Store")

        assert message.startswith("🛒 *New Order from Ana Silva*")
        assert "• Vase x2 - $10.00\n• Lamp x1 - $5.00" in message
        assert "Order Number: EA202405010001" in message
        assert "Total Amount: $25.00" in message
        assert message.endswith("*Order placed via Test Store*")

    def test_contact_details(self, buyer):
        message = format_order_message(_order(buyer))

        assert "Name: Ana Silva" in message
        assert "Email: ana@example.com" in message
        assert "Phone: 244922000111" in message
        assert "Rua Principal 123, Luanda, Luanda 1000" in message

    def test_missing_fields_render_placeholder(self):
        message = format_order_message(_order(None, shipping_state=None, shipping_zip_code=None))

        assert "*New Order from Customer*" in message
        assert f"Name: {NOT_AVAILABLE}" in message
        assert f"Email: {NOT_AVAILABLE}" in message
        assert f"Rua Principal 123, Luanda, {NOT_AVAILABLE} {NOT_AVAILABLE}" in message

    def test_custom_template(self, buyer):
        message = format_order_message(_order(buyer), "{order_number}|{total}|{customer_name}")
        assert message == "EA202405010001|$25.00|Ana Silva"

    def test_does_not_modify_order(self, buyer):
        order = _order(buyer)
        format_order_message(order)

        assert order.whatsapp_message is None
        assert not order.whatsapp_sent


class TestBuildWhatsappLink:

    def test_encodes_text(self):
        link = build_whatsapp_link("244922706107", "Hi there & *bold*!\nLine 2")
        assert link == "https://wa.me/244922706107?text=Hi%20there%20%26%20*bold*!%0ALine%202"

    def test_encodes_unicode(self):
        link = build_whatsapp_link("244922706107", "🛒 Esperança")
        assert link == "https://wa.me/244922706107?text=%F0%9F%9B%92%20Esperan%C3%A7a"
