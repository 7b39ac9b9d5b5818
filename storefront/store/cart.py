from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from pydantic import BaseModel, computed_field

from storefront.core.errors import NotFoundError, ValidationError


def _check_quantity(quantity) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer", details={"quantity": quantity})
    return quantity


def _check_price(price) -> Decimal:
    price = Decimal(str(price))
    if price < 0:
        raise ValidationError("Price cannot be negative", details={"price": str(price)})
    return price


class CartLine(BaseModel):
    line_id: int
    product_id: int
    quantity: int
    price: Decimal

    @computed_field
    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Cart(BaseModel):
    """
    A user's cart document.

    ``total_items`` and ``total_amount`` are folds over ``items`` and are never
    stored independently. ``version`` is bumped by the store on every write.
    """

    user_id: str
    version: int = 0
    next_line_id: int = 1
    items: List[CartLine] = []

    @computed_field
    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.items)

    @computed_field
    @property
    def total_amount(self) -> Decimal:
        return sum((line.line_total for line in self.items), Decimal("0"))

    def is_empty(self) -> bool:
        return not self.items

    def find_line(self, line_id: int) -> Optional[CartLine]:
        return next((line for line in self.items if line.line_id == line_id), None)

    def line_for_product(self, product_id: int) -> Optional[CartLine]:
        return next((line for line in self.items if line.product_id == product_id), None)

    def _get_line(self, line_id: int) -> CartLine:
        line = self.find_line(line_id)
        if line is None:
            raise NotFoundError("Item not found in cart", details={"line_id": line_id})
        return line

    def add_item(self, product_id: int, quantity: int, unit_price) -> CartLine:
        """Merge into the product's existing line or append a new one; price is always refreshed."""
        quantity = _check_quantity(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})
        price = _check_price(unit_price)

        line = self.line_for_product(product_id)
        if line is not None:
            line.quantity += quantity
            line.price = price
            return line
        line = CartLine(line_id=self.next_line_id, product_id=product_id, quantity=quantity, price=price)
        self.next_line_id += 1
        self.items.append(line)
        return line

    def update_item(self, line_id: int, quantity: int, unit_price=None) -> Optional[CartLine]:
        """Set a line's quantity; zero or negative removes the line and returns None."""
        quantity = _check_quantity(quantity)
        line = self._get_line(line_id)
        if quantity <= 0:
            self.items.remove(line)
            return None
        line.quantity = quantity
        if unit_price is not None:
            line.price = _check_price(unit_price)
        return line

    def remove_item(self, line_id: int) -> None:
        self.items.remove(self._get_line(line_id))

    def replace_items(self, entries: Iterable[Tuple[int, int, Decimal]]) -> None:
        """Replace every line with ``(product_id, quantity, unit_price)`` entries."""
        self.clear()
        for product_id, quantity, unit_price in entries:
            self.add_item(product_id, quantity, unit_price)

    def clear(self) -> None:
        self.items = []
