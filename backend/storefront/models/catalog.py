from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    """Product categories. Products reference them by id."""
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        db.UniqueConstraint("slug", name="uq_categories_slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    slug = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog entry.

    PRICING:
    All amounts are integer cents. When a product is on sale with a non-zero
    discount percentage the effective price is price * (100 - discount) / 100,
    rounded half-up to a whole cent so cart and order totals stay exact.

    STOCK:
    stock is never written with read-modify-write; see stock_service for the
    conditional UPDATE used at checkout. The CHECK constraint is the last line
    against overselling.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("slug", name="uq_products_slug"),
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("discount >= 0 AND discount <= 100", name="ck_products_discount_range"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_category_active", "category_id", "is_active"),
        db.Index("ix_products_featured_active", "featured", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False, index=True)
    slug = db.Column(db.String(140), nullable=False)
    description = db.Column(db.Text, nullable=True)
    short_description = db.Column(db.String(200), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)
    original_price_cents = db.Column(db.Integer, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # [{"url": ..., "alt": ...}] / ["tag", ...]
    images = db.Column(db.JSON, nullable=False, default=list)
    tags = db.Column(db.JSON, nullable=False, default=list)

    stock = db.Column(db.Integer, nullable=False, default=0)
    sku = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_on_sale = db.Column(db.Boolean, nullable=False, default=False)
    discount = db.Column(db.Integer, nullable=False, default=0)
    featured = db.Column(db.Boolean, nullable=False, default=False)

    rating = db.Column(db.Float, nullable=False, default=0)
    review_count = db.Column(db.Integer, nullable=False, default=0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} slug={self.slug!r} stock={self.stock}>"

    @property
    def sale_price_cents(self) -> int:
        if self.is_on_sale and self.discount:
            return (self.price_cents * (100 - self.discount) + 50) // 100
        return self.price_cents

    @property
    def effective_price_cents(self) -> int:
        """Unit price a buyer pays right now."""
        return self.sale_price_cents

    @property
    def discount_amount_cents(self) -> int:
        return self.price_cents - self.sale_price_cents

    @property
    def in_stock(self) -> bool:
        return self.stock > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "short_description": self.short_description,
            "price_cents": self.price_cents,
            "original_price_cents": self.original_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "category_id": self.category_id,
            "category": self.category.to_dict() if self.category else None,
            "images": list(self.images or []),
            "tags": list(self.tags or []),
            "stock": self.stock,
            "in_stock": self.in_stock,
            "sku": self.sku,
            "is_active": self.is_active,
            "is_on_sale": self.is_on_sale,
            "discount": self.discount,
            "featured": self.featured,
            "rating": self.rating,
            "review_count": self.review_count,
            "sort_order": self.sort_order,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
