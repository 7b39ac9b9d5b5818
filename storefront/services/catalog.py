"""
Stock reservation primitives and product lookups.

``reduce_stock`` is the only place stock goes down. It is a single
conditional UPDATE, so two checkouts racing for the last units cannot both
succeed: the database evaluates ``stock >= :qty`` and applies the decrement
in one statement.
"""
import logging
from decimal import Decimal
from typing import Iterable, Optional
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.core.errors import InsufficientStockError, NotFoundError, ProductUnavailableError, ValidationError
from storefront.db.models import Product

logger = logging.getLogger(__name__)


def get_product(db: Session, product_id: int) -> Product:
    obj = db.get(Product, product_id)
    if not obj:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return obj


def get_purchasable(db: Session, product_id: int) -> Product:
    """Product that exists and is active; inactive products read as not found."""
    obj = db.get(Product, product_id)
    if not obj or not obj.is_active:
        raise NotFoundError("Product not found or not available", details={"product_id": product_id})
    return obj


def load_products(db: Session, product_ids: Iterable[int]) -> dict:
    ids = set(product_ids)
    if not ids:
        return {}
    rows = db.execute(select(Product).where(Product.id.in_(ids))).scalars().all()
    return {p.id: p for p in rows}


def check_available(product: Product, quantity: int) -> None:
    """Advisory availability check against an already-loaded product."""
    if not product.is_active:
        raise ProductUnavailableError(product.id, product.name)
    if product.stock < quantity:
        raise InsufficientStockError(product.id, product.name, product.stock, quantity)


def reduce_stock(db: Session, product_id: int, quantity: int) -> int:
    """Atomically decrement stock if enough is left; returns the new stock level."""
    if quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.is_active.is_(True), Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount == 1:
        return _current_stock(db, product_id)

    # Nothing matched: work out why for the caller
    product = db.execute(select(Product.name, Product.stock, Product.is_active).where(Product.id == product_id)).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if not product.is_active:
        raise ProductUnavailableError(product_id, product.name)
    raise InsufficientStockError(product_id, product.name, product.stock, quantity)


def restore_stock(db: Session, product_id: int, quantity: int) -> Optional[int]:
    """
    Unconditionally add ``quantity`` back to a product's stock.

    Restoring to a product that no longer exists is tolerated: it is logged and
    skipped, returning None.
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Cannot restore %d units to missing product %s", quantity, product_id)
        return None
    return _current_stock(db, product_id)


def restock(db: Session, product_id: int, quantity: int) -> Product:
    """Admin restock; additive like restore_stock but the product must exist."""
    product = get_product(db, product_id)
    restore_stock(db, product_id, quantity)
    db.commit()
    db.refresh(product)
    logger.info("Product %s restocked by %d", product_id, quantity)
    return product


def create_product(db: Session, **fields) -> Product:
    price = Decimal(str(fields.get("price", 0)))
    stock = fields.get("stock", 0)
    if price < 0:
        raise ValidationError("Price cannot be negative", details={"price": str(price)})
    if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
        raise ValidationError("Stock must be a non-negative integer", details={"stock": stock})
    sku = fields.get("sku")
    if sku and db.execute(select(Product.id).where(Product.sku == sku)).first():
        raise ValidationError("SKU already exists", details={"sku": sku})
    obj = Product(**fields)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("Product %s created (%s)", obj.id, obj.name)
    return obj


def update_product(db: Session, product_id: int, **fields) -> Product:
    """Partial update of descriptive fields; stock moves only through reserve/restore/restock."""
    obj = get_product(db, product_id)
    if "price" in fields and fields["price"] is not None and Decimal(str(fields["price"])) < 0:
        raise ValidationError("Price cannot be negative", details={"price": str(fields["price"])})
    fields.pop("stock", None)
    for k, v in fields.items():
        setattr(obj, k, v)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def soft_delete_product(db: Session, product_id: int) -> Product:
    obj = get_product(db, product_id)
    obj.is_active = False
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("Product %s deactivated", product_id)
    return obj


def _current_stock(db: Session, product_id: int) -> int:
    # re-read so any Product already in the session sees the new level
    return db.get(Product, product_id, populate_existing=True).stock
