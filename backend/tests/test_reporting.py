"""
Admin reporting tests: order stats, dashboard, customers, sales trend, xlsx export.
"""

from datetime import timedelta
from io import BytesIO

import pytest
from openpyxl import load_workbook

from conftest import VALID_CHECKOUT
from storefront.services import cart_service, order_service, reporting_service
from storefront.time_utils import utcnow
from storefront.validation import ValidationError


@pytest.fixture
def two_orders(db_session, customer, admin, make_product, placed_order):
    """placed_order (2500, pending) plus a cancelled 1000 order."""
    mug = make_product(name="Mug", price_cents=1000, stock=5)
    cart_service.add_to_cart(customer.id, mug.id, 1)
    second = order_service.checkout(customer.id, VALID_CHECKOUT)["order"]
    order_service.cancel_order(second.id, actor=admin, reason="Duplicate order")
    return placed_order, second


class TestOrderStats:

    def test_revenue_excludes_cancelled(self, db_session, two_orders):
        stats = reporting_service.order_stats("30d")

        assert stats["total_orders"] == 2
        assert stats["total_revenue_cents"] == 2500
        assert stats["status_breakdown"]["pending"] == 1
        assert stats["status_breakdown"]["cancelled"] == 1
        assert stats["status_breakdown"]["delivered"] == 0

    def test_recent_orders_newest_first(self, db_session, two_orders):
        first, second = two_orders
        recent = reporting_service.order_stats("all")["recent_orders"]

        assert [o["id"] for o in recent] == [second.id, first.id]
        assert "items" not in recent[0]

    def test_bad_range(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.order_stats("1y")

    def test_empty(self, db_session):
        stats = reporting_service.order_stats("7d")
        assert stats["total_orders"] == 0
        assert stats["total_revenue_cents"] == 0
        assert stats["recent_orders"] == []


class TestDashboardAndCustomers:

    def test_dashboard(self, db_session, two_orders, make_product):
        make_product(name="Sold Out", stock=0)
        make_product(name="Plenty", stock=50)

        data = reporting_service.dashboard()

        # Vase 3, Lamp 2, Mug 4, Sold Out 0, Plenty 50
        assert data["products"]["total"] == 5
        assert data["products"]["low_stock"] == 4
        assert data["products"]["out_of_stock"] == 1
        assert data["customers"] == 1
        assert data["orders"] == {"total": 2, "pending": 1}

    def test_customers_with_spend(self, db_session, two_orders, make_user):
        make_user(email="window.shopper@example.com", name="Window Shopper")

        result = reporting_service.list_customers()
        by_email = {c["email"]: c for c in result["items"]}

        assert by_email["ana@example.com"]["order_count"] == 2
        assert by_email["ana@example.com"]["total_spent_cents"] == 2500
        assert by_email["window.shopper@example.com"]["order_count"] == 0
        assert "admin@store.local" not in by_email


class TestExport:

    def test_workbook_layout(self, db_session, two_orders):
        first, _ = two_orders
        content = reporting_service.export_orders_xlsx()

        ws = load_workbook(BytesIO(content)).active
        rows = list(ws.iter_rows(values_only=True))

        assert ws.title == "Orders"
        assert rows[0] == tuple(title for title, _ in reporting_service.EXPORT_COLUMNS)
        assert len(rows) == 3

        row = next(r for r in rows[1:] if r[0] == first.order_number)
        assert row[1] == "Ana Silva"
        assert row[2] == "ana@example.com"
        assert row[3] == "pending"
        assert row[5] == 25.0
        assert row[6] == 3
        assert row[8] == "Rua Principal 123, Luanda, Luanda, 1000, Angola"

    def test_status_filter(self, db_session, two_orders):
        content = reporting_service.export_orders_xlsx(status="cancelled")
        rows = list(load_workbook(BytesIO(content)).active.iter_rows(values_only=True))

        assert len(rows) == 2
        assert rows[1][3] == "cancelled"

    def test_bad_status(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.export_orders_xlsx(status="lost")

    def test_export_route(self, client, admin_headers, two_orders):
        resp = client.get("/api/admin/orders/export?status=all", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        assert "attachment" in resp.headers["Content-Disposition"]
        assert load_workbook(BytesIO(resp.data)).active.max_row == 3


class TestSalesTrend:

    def _ship(self, db_session, order, status="shipped", days_ago=0):
        order.status = status
        order.created_at = utcnow() - timedelta(days=days_ago)
        db_session.commit()

    def test_groups_shipped_and_delivered_by_day(self, db_session, customer, make_product, two_orders):
        first, cancelled = two_orders
        self._ship(db_session, first, "delivered", days_ago=3)
        cart_service.add_to_cart(customer.id, make_product(price_cents=400).id, 1)
        today = order_service.checkout(customer.id, VALID_CHECKOUT)["order"]
        self._ship(db_session, today)

        trend = reporting_service.sales_trend("7d")

        assert trend == [
            {"date": (utcnow() - timedelta(days=3)).date().isoformat(), "orders": 1, "revenue_cents": 2500},
            {"date": utcnow().date().isoformat(), "orders": 1, "revenue_cents": 400},
        ]

    def test_excludes_unshipped_and_old(self, db_session, two_orders):
        first, _ = two_orders
        assert reporting_service.sales_trend() == []

        self._ship(db_session, first, days_ago=40)
        assert reporting_service.sales_trend("30d") == []
        assert len(reporting_service.sales_trend("90d")) == 1

    def test_bad_period(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.sales_trend("1y")

    def test_route(self, client, admin_headers, two_orders):
        resp = client.get("/api/admin/analytics/sales-trend?period=90d", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json() == {"period": "90d", "items": []}
