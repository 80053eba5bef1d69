# Overview: Read-only admin aggregates over orders, products, customers and subscribers.

from __future__ import annotations

from datetime import timedelta
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy import func

from ..extensions import db
from ..models import NewsletterSubscriber, Order, Product, User
from ..models.orders import ORDER_STATUSES
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError, parse_optional_datetime
from .offer_service import offers_for_export

TIME_RANGES = {"7d": 7, "30d": 30, "90d": 90, "all": None}
LOW_STOCK_THRESHOLD = 5

EXPORT_COLUMNS = [
    ("Order Number", 18),
    ("Customer Name", 24),
    ("Customer Email", 30),
    ("Status", 12),
    ("Payment Status", 14),
    ("Total", 12),
    ("Items", 8),
    ("Payment Method", 18),
    ("Shipping Address", 48),
    ("Created At", 22),
    ("Updated At", 22),
]

OFFER_EXPORT_COLUMNS = [
    ("Title", 30),
    ("Code", 16),
    ("Type", 16),
    ("Discount", 12),
    ("Minimum Order", 14),
    ("Used", 8),
    ("Usage Limit", 12),
    ("Active", 8),
    ("Starts At", 22),
    ("Ends At", 22),
    ("Created At", 22),
]

TREND_PERIODS = {"7d": 7, "30d": 30, "90d": 90}
TREND_STATUSES = ("shipped", "delivered")


def order_stats(time_range: str = "30d") -> dict:
    """
    Totals over orders created within time_range (7d, 30d, 90d, all).
    Revenue excludes cancelled orders.
    """
    if time_range not in TIME_RANGES:
        raise ValidationError(f"time_range must be one of: {', '.join(TIME_RANGES)}")

    days = TIME_RANGES[time_range]
    base = db.session.query(Order)
    if days is not None:
        base = base.filter(Order.created_at >= utcnow() - timedelta(days=days))

    status_rows = (
        base.with_entities(Order.status, func.count(Order.id))
        .group_by(Order.status)
        .all()
    )
    breakdown = {status: 0 for status in ORDER_STATUSES}
    breakdown.update({status: count for status, count in status_rows})

    revenue = (
        base.with_entities(func.coalesce(func.sum(Order.total_amount_cents), 0))
        .filter(Order.status != "cancelled")
        .scalar()
    )

    recent = base.order_by(Order.created_at.desc(), Order.id.desc()).limit(5).all()

    return {
        "time_range": time_range,
        "total_orders": sum(breakdown.values()),
        "status_breakdown": breakdown,
        "total_revenue_cents": int(revenue or 0),
        "recent_orders": [o.to_dict(include_items=False) for o in recent],
    }


def dashboard() -> dict:
    return {
        "products": {
            "total": db.session.query(Product).count(),
            "active": db.session.query(Product).filter(Product.is_active.is_(True)).count(),
            "low_stock": db.session.query(Product).filter(Product.stock <= LOW_STOCK_THRESHOLD).count(),
            "out_of_stock": db.session.query(Product).filter(Product.stock == 0).count(),
        },
        "customers": db.session.query(User).filter(User.role == "customer").count(),
        "orders": {
            "total": db.session.query(Order).count(),
            "pending": db.session.query(Order).filter(Order.status == "pending").count(),
        },
        "subscribers": db.session.query(NewsletterSubscriber).filter(NewsletterSubscriber.is_active.is_(True)).count(),
    }


def list_customers(*, search: str | None = None, page: int = 1, per_page: int = 20) -> dict:
    order_count = func.count(Order.id)
    spent = func.coalesce(
        func.sum(db.case((Order.status != "cancelled", Order.total_amount_cents), else_=0)), 0
    )
    query = (
        db.session.query(User, order_count, spent)
        .outerjoin(Order, Order.user_id == User.id)
        .filter(User.role == "customer")
        .group_by(User.id)
    )
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(User.name.ilike(like), User.email.ilike(like)))

    per_page = min(max(per_page or 20, 1), 100)
    page = max(page or 1, 1)
    total = db.session.query(User).filter(User.role == "customer")
    if search:
        total = total.filter(db.or_(User.name.ilike(like), User.email.ilike(like)))
    total = total.count()

    rows = (
        query.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    items = []
    for user, count, cents in rows:
        data = user.to_dict()
        data["order_count"] = count
        data["total_spent_cents"] = int(cents or 0)
        items.append(data)

    return {
        "items": items,
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page if total > 0 else 1,
        },
    }


def _new_workbook(title: str, columns) -> tuple[Workbook, object]:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append([name for name, _ in columns])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for idx, (_, width) in enumerate(columns, start=1):
        ws.column_dimensions[ws.cell(row=1, column=idx).column_letter].width = width
    return wb, ws


def _workbook_bytes(wb: Workbook) -> bytes:
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _format_address(order: Order) -> str:
    parts = [
        order.shipping_street, order.shipping_city, order.shipping_state,
        order.shipping_zip_code, order.shipping_country,
    ]
    return ", ".join(p for p in parts if p) or "N/A"


def export_orders_xlsx(*, status: str | None = None, start_date=None, end_date=None) -> bytes:
    """Orders (newest first) as an .xlsx workbook."""
    query = db.session.query(Order)

    if status and status != "all":
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query = query.filter(Order.status == status)

    start = parse_optional_datetime(start_date, "start_date")
    end = parse_optional_datetime(end_date, "end_date")
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at <= end)

    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    wb, ws = _new_workbook("Orders", EXPORT_COLUMNS)

    for order in orders:
        user = order.user
        ws.append([
            order.order_number,
            user.name if user else "N/A",
            user.email if user else "N/A",
            order.status,
            order.payment_status,
            order.total_amount_cents / 100,
            order.item_count,
            order.payment_method or "N/A",
            _format_address(order),
            to_utc_z(order.created_at),
            to_utc_z(order.updated_at),
        ])

    return _workbook_bytes(wb)


def _offer_discount_label(offer) -> str:
    if offer.discount_type == "percentage":
        return f"{offer.discount_value}%"
    return f"{offer.discount_value / 100:.2f}"


def export_offers_xlsx(*, status: str = "all", offer_type: str | None = None) -> bytes:
    wb, ws = _new_workbook("Offers", OFFER_EXPORT_COLUMNS)
    for offer in offers_for_export(status=status, offer_type=offer_type):
        ws.append([
            offer.title,
            offer.code,
            offer.offer_type,
            _offer_discount_label(offer),
            offer.minimum_order_cents / 100,
            offer.used_count,
            offer.usage_limit if offer.usage_limit is not None else "Unlimited",
            "Yes" if offer.is_active else "No",
            to_utc_z(offer.starts_at),
            to_utc_z(offer.ends_at),
            to_utc_z(offer.created_at),
        ])
    return _workbook_bytes(wb)


def sales_trend(period: str = "30d", now=None) -> list[dict]:
    """
    Daily shipped/delivered orders and revenue over the last period,
    oldest day first. Days without sales are omitted.
    """
    if period not in TREND_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(TREND_PERIODS)}")

    since = (now or utcnow()) - timedelta(days=TREND_PERIODS[period])
    day = func.date(Order.created_at)
    rows = (
        db.session.query(
            day.label("day"),
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount_cents), 0),
        )
        .filter(Order.created_at >= since, Order.status.in_(TREND_STATUSES))
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [
        {"date": str(d), "orders": int(count), "revenue_cents": int(revenue)}
        for d, count, revenue in rows
    ]
