"""Tests for the stock reservation primitives."""
import logging
from decimal import Decimal

import pytest

from storefront.core.errors import InsufficientStockError, NotFoundError, ProductUnavailableError, ValidationError
from storefront.services import catalog


def test_reduce_stock_decrements(db, make_product):
    p = make_product(stock=5)
    assert catalog.reduce_stock(db, p.id, 3) == 2
    db.commit()
    assert catalog.get_product(db, p.id).stock == 2


def test_reduce_stock_to_exactly_zero(db, make_product):
    p = make_product(stock=3)
    assert catalog.reduce_stock(db, p.id, 3) == 0


def test_reduce_stock_insufficient_leaves_stock(db, make_product):
    p = make_product(name="Lamp", stock=2)
    with pytest.raises(InsufficientStockError) as exc:
        catalog.reduce_stock(db, p.id, 3)
    assert exc.value.available == 2
    assert exc.value.product_name == "Lamp"
    db.rollback()
    assert catalog.get_product(db, p.id).stock == 2


def test_reduce_stock_inactive_product(db, make_product):
    p = make_product(stock=10, is_active=False)
    with pytest.raises(ProductUnavailableError):
        catalog.reduce_stock(db, p.id, 1)


def test_reduce_stock_missing_product(db):
    with pytest.raises(NotFoundError):
        catalog.reduce_stock(db, 999, 1)


def test_reduce_stock_rejects_non_positive(db, make_product):
    p = make_product()
    with pytest.raises(ValidationError):
        catalog.reduce_stock(db, p.id, 0)


def test_second_reservation_sees_first(db, make_product):
    p = make_product(stock=5)
    catalog.reduce_stock(db, p.id, 3)
    with pytest.raises(InsufficientStockError) as exc:
        catalog.reduce_stock(db, p.id, 3)
    assert exc.value.available == 2


def test_restore_stock_is_additive(db, make_product):
    p = make_product(stock=1)
    assert catalog.restore_stock(db, p.id, 4) == 5


def test_restore_stock_on_soft_deleted_product(db, make_product):
    p = make_product(stock=1, is_active=False)
    assert catalog.restore_stock(db, p.id, 2) == 3


def test_restore_stock_missing_product_is_logged(db, caplog):
    with caplog.at_level(logging.WARNING, logger="storefront.services.catalog"):
        assert catalog.restore_stock(db, 999, 2) is None
    assert "missing product 999" in caplog.text


def test_restock(db, make_product):
    p = make_product(stock=1)
    assert catalog.restock(db, p.id, 9).stock == 10


def test_soft_delete_keeps_the_row(db, make_product):
    p = make_product()
    catalog.soft_delete_product(db, p.id)
    assert catalog.get_product(db, p.id).is_active is False
    with pytest.raises(NotFoundError):
        catalog.get_purchasable(db, p.id)


def test_update_product_ignores_stock(db, make_product):
    p = make_product(price="5.00", stock=3)
    updated = catalog.update_product(db, p.id, price=Decimal("6.00"), stock=100)
    assert updated.price == Decimal("6.00")
    assert updated.stock == 3


def test_create_product_validation(db):
    with pytest.raises(ValidationError):
        catalog.create_product(db, name="Bad", price=Decimal("-1"), stock=1)
    with pytest.raises(ValidationError):
        catalog.create_product(db, name="Bad", price=Decimal("1"), stock=-1)
