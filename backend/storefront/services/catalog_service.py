# backend/storefront/services/catalog_service.py
"""
Catalog Service: products and categories.

Public listings only ever show active products; admin endpoints pass
include_inactive=True.
"""
from __future__ import annotations

import re
import unicodedata

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CartItem, Category, OrderItem, Product, WishlistItem
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry

PRODUCT_MUTABLE_FIELDS = {
    "name", "slug", "description", "short_description",
    "price_cents", "original_price_cents", "category_id",
    "images", "tags", "stock", "sku",
    "is_active", "is_on_sale", "discount", "featured",
    "rating", "review_count", "sort_order",
}

CATEGORY_MUTABLE_FIELDS = {"name", "slug", "description", "is_active", "sort_order"}

PRODUCT_SORT_COLUMNS = {
    "created_at": Product.created_at,
    "price": Product.price_cents,
    "name": Product.name,
    "rating": Product.rating,
    "sort_order": Product.sort_order,
}


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "item"


def _unique_slug(model, base: str, exclude_id: int | None = None) -> str:
    slug = base
    n = 2
    while True:
        q = db.session.query(model.id).filter(model.slug == slug)
        if exclude_id is not None:
            q = q.filter(model.id != exclude_id)
        if q.first() is None:
            return slug
        slug = f"{base}-{n}"
        n += 1


def _paginate(query, page: int, per_page: int) -> dict:
    per_page = min(max(per_page or 12, 1), 100)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [r.to_dict() for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _resolve_category(category) -> Category | None:
    """Accepts a category id or slug."""
    if category is None or category == "":
        return None
    if isinstance(category, int) or (isinstance(category, str) and category.isdigit()):
        found = db.session.get(Category, int(category))
    else:
        found = db.session.query(Category).filter_by(slug=str(category)).first()
    if found is None:
        raise NotFoundError("Category not found")
    return found


def list_products(
    *,
    category=None,
    search: str | None = None,
    min_price: int | None = None,
    max_price: int | None = None,
    featured: bool | None = None,
    on_sale: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    per_page: int = 12,
    include_inactive: bool = False,
) -> dict:
    query = db.session.query(Product)

    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))

    cat = _resolve_category(category)
    if cat is not None:
        query = query.filter(Product.category_id == cat.id)

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(like),
            Product.description.ilike(like),
            Product.short_description.ilike(like),
        ))

    if min_price is not None:
        query = query.filter(Product.price_cents >= min_price)
    if max_price is not None:
        query = query.filter(Product.price_cents <= max_price)
    if featured is not None:
        query = query.filter(Product.featured.is_(featured))
    if on_sale is not None:
        query = query.filter(Product.is_on_sale.is_(on_sale))

    column = PRODUCT_SORT_COLUMNS.get(sort_by)
    if column is None:
        raise ValidationError(
            f"sort_by must be one of: {', '.join(sorted(PRODUCT_SORT_COLUMNS))}"
        )
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")
    ordering = column.asc() if sort_order == "asc" else column.desc()
    query = query.order_by(ordering, Product.id.asc())

    return _paginate(query, page, per_page)


def list_featured_products(limit: int = 8) -> list[dict]:
    rows = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.featured.is_(True))
        .order_by(Product.sort_order.asc(), Product.created_at.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [p.to_dict() for p in rows]


def list_sale_products(limit: int = 12) -> list[dict]:
    rows = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.is_on_sale.is_(True))
        .order_by(Product.discount.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [p.to_dict() for p in rows]


def get_product(product_id: int, *, include_inactive: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or (not include_inactive and not product.is_active):
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_product_refs(patch: dict, exclude_id: int | None = None) -> None:
    if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
        raise NotFoundError("Category not found", details={"category_id": patch["category_id"]})

    sku = patch.get("sku")
    if sku:
        q = db.session.query(Product.id).filter(Product.sku == sku)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise ConflictError("SKU already exists.")


def create_product(*, patch: dict) -> Product:
    """
    Create product from a validated patch dict.

    Raises:
        ConflictError: duplicate SKU or slug
        NotFoundError: unknown category_id
    """
    _check_product_refs(patch)

    if patch.get("slug"):
        if db.session.query(Product.id).filter(Product.slug == patch["slug"]).first():
            raise ConflictError("Slug already exists.")
    else:
        patch = {**patch, "slug": _unique_slug(Product, slugify(patch["name"]))}

    p = Product()
    apply_product_patch(p, patch)
    db.session.add(p)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product conflicts with an existing product (slug or SKU).")

    current_app.logger.info("Created product id=%s slug=%s", p.id, p.slug)
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    _check_product_refs(patch, exclude_id=product_id)

    if patch.get("slug"):
        clash = (
            db.session.query(Product.id)
            .filter(Product.slug == patch["slug"], Product.id != product_id)
            .first()
        )
        if clash:
            raise ConflictError("Slug already exists.")

    def _op() -> Product:
        p = db.session.get(Product, product_id)
        if p is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        apply_product_patch(p, patch)
        db.session.commit()
        return p

    try:
        return run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product conflicts with an existing product (slug or SKU).")


def delete_product(*, product_id: int) -> None:
    """
    Remove a product from the catalog.

    Cart and wishlist lines pointing at it are dropped; order item snapshots
    keep their name and price but lose the product reference.
    """
    p = db.session.get(Product, product_id)
    if p is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    db.session.query(CartItem).filter(CartItem.product_id == product_id).delete(synchronize_session=False)
    db.session.query(WishlistItem).filter(WishlistItem.product_id == product_id).delete(synchronize_session=False)
    db.session.query(OrderItem).filter(OrderItem.product_id == product_id).update(
        {OrderItem.product_id: None}, synchronize_session=False
    )
    db.session.delete(p)
    db.session.commit()
    # Carts/wishlists loaded earlier in this session may still hold the removed lines
    db.session.expire_all()
    current_app.logger.info("Deleted product id=%s", product_id)


def list_categories(*, include_inactive: bool = False) -> list[dict]:
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    rows = query.order_by(Category.sort_order.asc(), Category.name.asc()).all()
    return [c.to_dict() for c in rows]


def get_category_by_slug(slug: str) -> Category:
    category = db.session.query(Category).filter_by(slug=slug, is_active=True).first()
    if category is None:
        raise NotFoundError("Category not found")
    return category


def create_category(*, patch: dict) -> Category:
    name = patch.get("name")
    if not name or len(name) < 2:
        raise ValidationError("name must be between 2 and 50 characters")

    if db.session.query(Category.id).filter(Category.name == name).first():
        raise ConflictError("Category name already exists.")

    slug = patch.get("slug") or slugify(name)
    if db.session.query(Category.id).filter(Category.slug == slug).first():
        raise ConflictError("Category slug already exists.")

    c = Category()
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(c, k, v)
    c.slug = slug

    db.session.add(c)
    db.session.commit()
    return c


def update_category(*, category_id: int, patch: dict) -> Category:
    c = db.session.get(Category, category_id)
    if c is None:
        raise NotFoundError("Category not found")

    for field, model_col in (("name", Category.name), ("slug", Category.slug)):
        if patch.get(field):
            clash = (
                db.session.query(Category.id)
                .filter(model_col == patch[field], Category.id != category_id)
                .first()
            )
            if clash:
                raise ConflictError(f"Category {field} already exists.")

    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(c, k, v)
    db.session.commit()
    return c


def delete_category(*, category_id: int) -> None:
    c = db.session.get(Category, category_id)
    if c is None:
        raise NotFoundError("Category not found")

    in_use = db.session.query(Product.id).filter(Product.category_id == category_id).count()
    if in_use:
        raise ConflictError(
            "Category still has products",
            details={"product_count": in_use},
        )

    db.session.delete(c)
    db.session.commit()
