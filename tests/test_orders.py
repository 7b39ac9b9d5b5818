"""Tests for the order status machine, cancellation and order queries."""
from decimal import Decimal

import pytest

from storefront.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from storefront.db.models import OrderStatus, PaymentStatus, Product
from storefront.services import cart as cart_service, catalog, orders
from storefront.services.checkout import ShippingAddress, checkout

ADDRESS = ShippingAddress(street="1 Main St", city="Pune", state="MH", postal_code="411001")


@pytest.fixture
def place_order(db, store, events):
    def _place(user_id, *lines):
        for product, quantity in lines:
            cart_service.add_item(db, store, user_id, product.id, quantity)
        return checkout(db, store, user_id, ADDRESS)
    return _place


def _stock(db, product_id):
    db.expire_all()
    return catalog.get_product(db, product_id).stock


class TestStatusUpdates:
    def test_forward_chain_to_delivered(self, db, make_product, place_order, events):
        p = make_product(stock=5)
        order = place_order("u1", (p, 1))

        for status in ("processing", "shipped", "delivered"):
            order = orders.update_status(db, order.id, status)
            assert order.order_status == OrderStatus(status)

        assert order.delivered_at is not None
        assert order.payment_status == PaymentStatus.COMPLETED
        assert [e["previous_status"] for e in events if e["type"] == "order.status_changed"] == [
            "placed", "processing", "shipped",
        ]

    def test_placed_can_skip_ahead(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        assert orders.update_status(db, order.id, OrderStatus.SHIPPED).order_status == OrderStatus.SHIPPED

    def test_no_moving_backwards(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        orders.update_status(db, order.id, "shipped")
        with pytest.raises(InvalidTransitionError) as exc:
            orders.update_status(db, order.id, "processing")
        assert exc.value.current == "shipped"

    def test_returned_only_after_delivery(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        with pytest.raises(InvalidTransitionError):
            orders.update_status(db, order.id, "returned")
        orders.update_status(db, order.id, "delivered")
        assert orders.update_status(db, order.id, "returned").order_status == OrderStatus.RETURNED

    def test_terminal_states_stay_put(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        orders.cancel_order(db, order.id, user_id="u1")
        for status in ("placed", "processing", "delivered", "cancelled"):
            with pytest.raises(InvalidTransitionError):
                orders.update_status(db, order.id, status)

    def test_tracking_number_is_stored(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        order = orders.update_status(db, order.id, "shipped", tracking_number=" TRK-1 ")
        assert order.tracking_number == "TRK-1"

    def test_same_status_only_updates_tracking(self, db, make_product, place_order, events):
        order = place_order("u1", (make_product(), 1))
        orders.update_status(db, order.id, "shipped")
        order = orders.update_status(db, order.id, "shipped", tracking_number="TRK-2")
        assert order.order_status == OrderStatus.SHIPPED
        assert order.tracking_number == "TRK-2"
        assert len([e for e in events if e["type"] == "order.status_changed"]) == 1

    def test_tracking_number_on_delivered_order(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        orders.update_status(db, order.id, "delivered")
        order = orders.update_status(db, order.id, "delivered", tracking_number="TRK-3")
        assert order.order_status == OrderStatus.DELIVERED
        assert order.tracking_number == "TRK-3"

    def test_rejected_transition_changes_nothing(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        orders.update_status(db, order.id, "shipped", tracking_number="TRK-1")
        with pytest.raises(InvalidTransitionError):
            orders.update_status(db, order.id, "processing", tracking_number="TRK-2")
        db.expire_all()
        order = orders.get_order(db, order.id, is_admin=True)
        assert order.order_status == OrderStatus.SHIPPED
        assert order.tracking_number == "TRK-1"

    def test_unknown_status(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        with pytest.raises(ValidationError):
            orders.update_status(db, order.id, "lost")

    def test_missing_order(self, db):
        with pytest.raises(NotFoundError):
            orders.update_status(db, 404, "shipped")


class TestCancel:
    def test_cancel_restores_stock(self, db, make_product, place_order, events):
        a, b = make_product(stock=5), make_product(stock=3)
        order = place_order("u1", (a, 2), (b, 3))
        assert (_stock(db, a.id), _stock(db, b.id)) == (3, 0)

        order = orders.cancel_order(db, order.id, reason="changed my mind", user_id="u1")

        assert order.order_status == OrderStatus.CANCELLED
        assert order.cancellation_reason == "changed my mind"
        assert order.cancelled_at is not None
        assert (_stock(db, a.id), _stock(db, b.id)) == (5, 3)
        assert events[-1]["type"] == "order.cancelled"

    def test_restore_is_additive_after_restock(self, db, make_product, place_order):
        p = make_product(stock=5)
        order = place_order("u1", (p, 4))
        catalog.restock(db, p.id, 10)

        orders.cancel_order(db, order.id, user_id="u1")
        assert _stock(db, p.id) == 15

    def test_default_reason(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        assert orders.cancel_order(db, order.id, user_id="u1").cancellation_reason == "Cancelled by user"

    def test_shipped_order_can_be_cancelled(self, db, make_product, place_order):
        p = make_product(stock=2)
        order = place_order("u1", (p, 2))
        orders.update_status(db, order.id, "shipped")
        orders.cancel_order(db, order.id, user_id="u1")
        assert _stock(db, p.id) == 2

    def test_delivered_order_cannot_be_cancelled(self, db, make_product, place_order):
        p = make_product(stock=5)
        order = place_order("u1", (p, 2))
        order = orders.update_status(db, order.id, "delivered")
        delivered_at = order.delivered_at

        with pytest.raises(InvalidTransitionError) as exc:
            orders.cancel_order(db, order.id, user_id="u1")
        assert "Cannot cancel order with status: delivered" in exc.value.message

        db.expire_all()
        order = orders.get_order(db, order.id, user_id="u1")
        assert order.order_status == OrderStatus.DELIVERED
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.delivered_at == delivered_at
        assert order.cancelled_at is None
        assert _stock(db, p.id) == 3

    def test_second_cancel_fails_and_restores_once(self, db, make_product, place_order):
        p = make_product(stock=5)
        order = place_order("u1", (p, 2))
        orders.cancel_order(db, order.id, user_id="u1")
        with pytest.raises(InvalidTransitionError):
            orders.cancel_order(db, order.id, user_id="u1")
        assert _stock(db, p.id) == 5

    def test_stale_cancel_loses_the_race(self, db, make_product, place_order):
        p = make_product(stock=5)
        order = place_order("u1", (p, 2))
        orders.cancel_order(db, order.id, user_id="u1")

        # a second request still holding the pre-cancel status
        with pytest.raises(InvalidTransitionError) as exc:
            orders._compare_and_set(db, order, OrderStatus.PLACED, OrderStatus.CANCELLED)
        db.rollback()
        assert exc.value.current == "cancelled"
        assert _stock(db, p.id) == 5

    def test_admin_cancel_via_status_update_restores_stock(self, db, make_product, place_order):
        p = make_product(stock=5)
        order = place_order("u1", (p, 2))
        order = orders.update_status(db, order.id, "cancelled")
        assert order.order_status == OrderStatus.CANCELLED
        assert order.cancellation_reason == "Cancelled by admin"
        assert _stock(db, p.id) == 5

    def test_restore_tolerates_missing_product(self, db, make_product, place_order):
        gone, kept = make_product(stock=5), make_product(stock=5)
        order = place_order("u1", (gone, 1), (kept, 1))
        db.delete(db.get(Product, gone.id))
        db.commit()

        order = orders.cancel_order(db, order.id, user_id="u1")
        assert order.order_status == OrderStatus.CANCELLED
        assert _stock(db, kept.id) == 5

    def test_other_users_order_is_not_found(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        with pytest.raises(NotFoundError):
            orders.cancel_order(db, order.id, user_id="intruder")


class TestQueries:
    def test_get_order_visibility(self, db, make_product, place_order):
        order = place_order("u1", (make_product(), 1))
        assert orders.get_order(db, order.id, user_id="u1").id == order.id
        assert orders.get_order(db, order.id, is_admin=True).id == order.id
        with pytest.raises(NotFoundError):
            orders.get_order(db, order.id, user_id="u2")

    def test_list_newest_first_and_filtered(self, db, make_product, place_order):
        p = make_product(stock=20)
        first = place_order("u1", (p, 1))
        second = place_order("u1", (p, 1))
        place_order("u2", (p, 1))
        orders.update_status(db, first.id, "shipped")

        assert [o.id for o in orders.list_orders(db, user_id="u1")] == [second.id, first.id]
        assert [o.id for o in orders.list_orders(db, user_id="u1", status="shipped")] == [first.id]
        assert len(orders.list_orders(db)) == 3
        assert len(orders.list_orders(db, limit=2)) == 2

    def test_stats(self, db, make_product, place_order):
        p = make_product(price="100.00", stock=20)
        a = place_order("u1", (p, 1))
        place_order("u2", (p, 2))
        orders.cancel_order(db, a.id, user_id="u1")

        stats = orders.order_stats(db)
        by_status = {b["status"]: b for b in stats["status_breakdown"]}

        assert stats["total_orders"] == 2
        assert by_status["cancelled"]["count"] == 1
        assert by_status["placed"]["total_amount"] == Decimal("286.00")
        assert stats["total_revenue"] == Decimal("454.00")
        assert stats["period"] == {"start": "All time", "end": "All time"}
