"""Cart mutations validated against the live catalog before they reach the cart document."""
import logging
from typing import Iterable, Tuple
from sqlalchemy.orm import Session

from storefront.core.errors import InsufficientStockError, ValidationError
from storefront.services import catalog
from storefront.store.cart import Cart
from storefront.store.cart_store import CartStore

logger = logging.getLogger(__name__)


def _positive_int(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})
    return quantity


def get_cart(store: CartStore, user_id: str) -> Cart:
    return store.get_cart(user_id)


def add_item(db: Session, store: CartStore, user_id: str, product_id: int, quantity: int) -> Cart:
    quantity = _positive_int(quantity)
    product = catalog.get_purchasable(db, product_id)
    if product.stock < quantity:
        raise InsufficientStockError(product.id, product.name, product.stock, quantity,
                                     message=f"Only {product.stock} items available in stock")

    def apply(cart: Cart):
        line = cart.line_for_product(product_id)
        already = line.quantity if line else 0
        if already + quantity > product.stock:
            raise InsufficientStockError(
                product.id, product.name, product.stock, already + quantity,
                message=f"Cannot add {quantity} more items. Only {max(product.stock - already, 0)} more available.",
            )
        return cart.add_item(product_id, quantity, product.price)

    cart, _ = store.mutate(user_id, apply)
    logger.info("Cart %s: added product %s x%d", user_id, product_id, quantity)
    return cart


def update_item(db: Session, store: CartStore, user_id: str, line_id: int, quantity: int) -> Cart:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer", details={"quantity": quantity})

    def apply(cart: Cart):
        line = cart.find_line(line_id)
        if line is None or quantity <= 0:
            # Cart raises NotFoundError for a foreign line id, or drops the line
            return cart.update_item(line_id, quantity)
        product = catalog.get_purchasable(db, line.product_id)
        if quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, product.stock, quantity,
                                         message=f"Only {product.stock} items available in stock")
        return cart.update_item(line_id, quantity, unit_price=product.price)

    cart, _ = store.mutate(user_id, apply)
    logger.info("Cart %s: line %s set to %d", user_id, line_id, quantity)
    return cart


def remove_item(store: CartStore, user_id: str, line_id: int) -> Cart:
    cart, _ = store.mutate(user_id, lambda c: c.remove_item(line_id))
    logger.info("Cart %s: line %s removed", user_id, line_id)
    return cart


def replace_items(db: Session, store: CartStore, user_id: str, entries: Iterable[Tuple[int, int]]) -> Cart:
    """Bulk replace: products listed once each, purchasable, and every quantity within stock."""
    entries = list(entries)
    if not entries:
        raise ValidationError("Items array is required and cannot be empty")
    product_ids = [product_id for product_id, _ in entries]
    duplicates = sorted({pid for pid in product_ids if product_ids.count(pid) > 1})
    if duplicates:
        raise ValidationError("Each product may appear only once", details={"product_ids": duplicates})
    priced = []
    for product_id, quantity in entries:
        product = catalog.get_purchasable(db, product_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Invalid quantity for product {product.name}",
                                  details={"product_id": product_id, "quantity": quantity})
        if quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, product.stock, quantity)
        priced.append((product_id, quantity, product.price))

    cart, _ = store.mutate(user_id, lambda c: c.replace_items(priced))
    logger.info("Cart %s: replaced with %d lines", user_id, len(cart.items))
    return cart


def clear_cart(store: CartStore, user_id: str) -> Cart:
    cart = store.clear(user_id)
    logger.info("Cart %s cleared", user_id)
    return cart
