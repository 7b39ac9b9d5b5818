"""
Order ledger: lookups, the status state machine and cancellation.

Every status change is a compare-and-set UPDATE conditioned on the status the
caller observed. Two concurrent cancellations of the same order therefore
cannot both succeed, and stock is restored exactly once.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Union
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from storefront.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from storefront.db.models import Order, OrderStatus, PaymentStatus, utcnow
from storefront.kafka.producer import emit_order_event
from storefront.services import catalog

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}
CANCELLABLE = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if OrderStatus.CANCELLED in targets)
TERMINAL = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

DEFAULT_LIST_LIMIT = 50
CENTS = Decimal("0.01")


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(
            f"Status must be one of: {', '.join(s.value for s in OrderStatus)}",
            details={"status": str(value)},
        )


def get_order(db: Session, order_id: int, user_id: Optional[str] = None, is_admin: bool = False) -> Order:
    """Order visible to the caller; customers only see their own orders."""
    order = db.get(Order, order_id)
    if not order or (not is_admin and order.user_id != user_id):
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    db: Session,
    user_id: Optional[str] = None,
    status: Union[str, OrderStatus, None] = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> List[Order]:
    """Newest first; ``user_id=None`` lists across all users (admin)."""
    stmt = select(Order)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if status:
        stmt = stmt.where(Order.order_status == parse_status(status))
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())


def _compare_and_set(db: Session, order: Order, expected: OrderStatus, target: OrderStatus, **values) -> None:
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.order_status == expected)
        .values(order_status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = db.execute(select(Order.order_status).where(Order.id == order.id)).scalar_one()
        raise InvalidTransitionError(current.value, target.value)


def update_status(
    db: Session,
    order_id: int,
    new_status: Union[str, OrderStatus],
    tracking_number: Optional[str] = None,
) -> Order:
    """Admin status change. Cancelling goes through cancel_order so stock is restored."""
    target = parse_status(new_status)
    order = get_order(db, order_id, is_admin=True)
    current = order.order_status
    tracking_number = tracking_number.strip() if tracking_number else None

    if target == OrderStatus.CANCELLED:
        return cancel_order(db, order_id, reason="Cancelled by admin", is_admin=True,
                            tracking_number=tracking_number)

    if target == current and current not in TERMINAL:
        if tracking_number:
            order.tracking_number = tracking_number
            db.add(order)
            db.commit()
            db.refresh(order)
        return order
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)

    values = {}
    if tracking_number:
        values["tracking_number"] = tracking_number
    if target == OrderStatus.DELIVERED:
        values["delivered_at"] = utcnow()
        values["payment_status"] = PaymentStatus.COMPLETED
    try:
        _compare_and_set(db, order, current, target, **values)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)

    logger.info("Order status updated: %s %s -> %s", order.order_number, current.value, target.value)
    emit_order_event("order.status_changed", order, previous_status=current.value)
    return order


def cancel_order(
    db: Session,
    order_id: int,
    reason: Optional[str] = None,
    user_id: Optional[str] = None,
    is_admin: bool = False,
    tracking_number: Optional[str] = None,
) -> Order:
    """
    Cancel an order and give its stock back.

    The status change and every restore_stock run in one transaction: either the
    order is cancelled with all of its lines restocked, or nothing changes.
    """
    order = get_order(db, order_id, user_id=user_id, is_admin=is_admin)
    current = order.order_status
    if current not in CANCELLABLE:
        raise InvalidTransitionError(current.value, OrderStatus.CANCELLED.value,
                                     message=f"Cannot cancel order with status: {current.value}")

    values = {
        "cancelled_at": utcnow(),
        "cancellation_reason": (reason or "").strip() or "Cancelled by user",
    }
    if tracking_number:
        values["tracking_number"] = tracking_number
    try:
        _compare_and_set(db, order, current, OrderStatus.CANCELLED, **values)
        for item in order.items:
            catalog.restore_stock(db, item.product_id, item.quantity)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)

    logger.info("Order cancelled: %s (%s)", order.order_number, order.cancellation_reason)
    emit_order_event("order.cancelled", order, previous_status=current.value, items=[
        {"product_id": it.product_id, "quantity": it.quantity} for it in order.items
    ])
    return order


def order_stats(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
    """Order count and revenue per status, optionally within a created-at window."""
    stmt = select(Order.order_status, func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0))
    if start is not None:
        stmt = stmt.where(Order.created_at >= start)
    if end is not None:
        stmt = stmt.where(Order.created_at <= end)
    rows = db.execute(stmt.group_by(Order.order_status)).all()

    breakdown = [
        {"status": status.value, "count": count, "total_amount": Decimal(str(amount)).quantize(CENTS)}
        for status, count, amount in rows
    ]
    return {
        "total_orders": sum(b["count"] for b in breakdown),
        "total_revenue": sum((b["total_amount"] for b in breakdown), Decimal("0")),
        "status_breakdown": breakdown,
        "period": {
            "start": start.isoformat() if start else "All time",
            "end": end.isoformat() if end else "All time",
        },
    }
