"""
Checkout: turn a user's cart into an immutable order.

All database work (advisory stock checks, the atomic decrement of every
line's product and the order insert) happens inside one transaction. If any
decrement fails the transaction is rolled back, so no product stays
decremented without a matching order and no partial order becomes visible.

Before that transaction commits, the Redis cart is claimed at the version that
was read. Two overlapping checkouts of the same cart therefore produce one
order: the second finds the cart already emptied and rolls back.
"""
import logging
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Union
from sqlalchemy import select
from sqlalchemy.orm import Session
from redis.exceptions import RedisError

from storefront.core.config import settings
from storefront.core.errors import EmptyCartError, ProductUnavailableError, StorefrontError, ValidationError
from storefront.db.models import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus, PLACEHOLDER_IMAGE
from storefront.kafka.producer import emit_order_event
from storefront.services import catalog
from storefront.store.cart import Cart
from storefront.store.cart_store import CartStore

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ORDER_NUMBER_ALPHABET = string.digits + string.ascii_uppercase
ORDER_NUMBER_ATTEMPTS = 3
NOTES_MAX_LENGTH = 500


@dataclass
class ShippingAddress:
    street: str
    city: str
    state: str
    postal_code: str
    country: Optional[str] = None

    def cleaned(self) -> "ShippingAddress":
        missing = [name for name in ("street", "city", "state", "postal_code")
                   if not (getattr(self, name) or "").strip()]
        if missing:
            raise ValidationError("Complete shipping address is required", details={"missing": missing})
        country = (self.country or "").strip() or settings.DEFAULT_COUNTRY
        return ShippingAddress(
            street=self.street.strip(),
            city=self.city.strip(),
            state=self.state.strip(),
            postal_code=self.postal_code.strip(),
            country=country,
        )


@dataclass
class Totals:
    total_items: int
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total_amount: Decimal


def compute_totals(lines: List[OrderItem]) -> Totals:
    """Money math for an order; rounding happens only on the tax."""
    subtotal = sum((Decimal(line.price) * line.quantity for line in lines), Decimal("0"))
    shipping_cost = Decimal("0") if subtotal > settings.FREE_SHIPPING_THRESHOLD else settings.FLAT_SHIPPING_FEE
    tax = (subtotal * settings.TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    return Totals(
        total_items=sum(line.quantity for line in lines),
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax=tax,
        total_amount=subtotal + shipping_cost + tax,
    )


def generate_order_number() -> str:
    """ORD-<epoch millis>-<6 random base36 chars>."""
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"{settings.ORDER_NUMBER_PREFIX}-{int(time.time() * 1000)}-{suffix}"


def parse_payment_method(value: Union[str, PaymentMethod, None]) -> PaymentMethod:
    if value is None or value == "":
        return PaymentMethod.CASH_ON_DELIVERY
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(
            f"Payment method must be one of: {', '.join(m.value for m in PaymentMethod)}",
            details={"payment_method": str(value)},
        )


def build_order_lines(db: Session, cart: Cart) -> List[OrderItem]:
    """Advisory checks plus the immutable snapshot of every cart line."""
    products = catalog.load_products(db, (line.product_id for line in cart.items))
    lines = []
    for cart_line in cart.items:
        product = products.get(cart_line.product_id)
        if product is None:
            raise ProductUnavailableError(cart_line.product_id)
        catalog.check_available(product, cart_line.quantity)
        lines.append(OrderItem(
            product_id=product.id,
            name=product.name,
            price=Decimal(product.price),
            quantity=cart_line.quantity,
            image=product.image or PLACEHOLDER_IMAGE,
        ))
    return lines


def checkout(
    db: Session,
    store: CartStore,
    user_id: str,
    shipping_address: ShippingAddress,
    payment_method: Union[str, PaymentMethod, None] = None,
    notes: Optional[str] = None,
) -> Order:
    address = shipping_address.cleaned()
    method = parse_payment_method(payment_method)
    notes = notes.strip() if notes else None
    if notes and len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError(f"Notes cannot exceed {NOTES_MAX_LENGTH} characters")

    cart = store.get_cart(user_id)
    if cart.is_empty():
        raise EmptyCartError()

    try:
        order = _place_order(db, cart, user_id, address, method, notes)
        # only one checkout may convert this version of the cart
        claimed = store.claim(user_id, cart.version)
    except Exception:
        db.rollback()
        raise

    try:
        db.commit()
    except Exception:
        db.rollback()
        try:
            store.restore(user_id, claimed)
        except (RedisError, StorefrontError):
            logger.exception("Checkout for %s failed and the cart could not be restored", user_id)
        raise
    db.refresh(order)

    logger.info("Order created: %s by %s - %s", order.order_number, user_id, order.total_amount)
    emit_order_event("order.placed", order, items=[
        {"product_id": it.product_id, "quantity": it.quantity, "price": str(it.price)} for it in order.items
    ])
    return order


def _place_order(db: Session, cart: Cart, user_id: str, address: ShippingAddress,
                 method: PaymentMethod, notes: Optional[str]) -> Order:
    lines = build_order_lines(db, cart)
    totals = compute_totals(lines)

    # Authoritative check: each decrement is conditional on stock at this instant
    for line in lines:
        catalog.reduce_stock(db, line.product_id, line.quantity)

    order = Order(
        order_number=_unused_order_number(db),
        user_id=user_id,
        ship_street=address.street,
        ship_city=address.city,
        ship_state=address.state,
        ship_postal_code=address.postal_code,
        ship_country=address.country,
        payment_method=method,
        payment_status=PaymentStatus.PENDING,
        order_status=OrderStatus.PLACED,
        total_items=totals.total_items,
        subtotal=totals.subtotal,
        shipping_cost=totals.shipping_cost,
        tax=totals.tax,
        total_amount=totals.total_amount,
        notes=notes,
        items=lines,
    )
    db.add(order)
    db.flush()
    return order


def _unused_order_number(db: Session) -> str:
    # the unique index on order_number is the final guard
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number()
        if db.execute(select(Order.id).where(Order.order_number == number)).first() is None:
            return number
        logger.warning("Order number %s already taken, regenerating", number)
    return generate_order_number()
