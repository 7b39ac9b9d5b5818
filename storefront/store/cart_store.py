import logging
from typing import Callable, Optional, Tuple, TypeVar
from redis import Redis
from redis.exceptions import WatchError
from storefront.core.config import settings
from storefront.core.errors import CartConflictError, EmptyCartError
from storefront.store.cart import Cart

logger = logging.getLogger(__name__)

T = TypeVar("T")

def get_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

def cart_key(user_id: str) -> str:
    return f"cart:{user_id}"

class CartStore:
    """One JSON document per user cart, written under WATCH/MULTI."""

    def __init__(self, client: Optional[Redis] = None, max_retries: Optional[int] = None):
        self.client = client if client is not None else get_client()
        self.max_retries = max_retries or settings.CART_MAX_RETRIES

    @staticmethod
    def _load(user_id: str, raw: Optional[str]) -> Cart:
        if not raw:
            return Cart(user_id=user_id)
        return Cart.model_validate_json(raw)

    def get_cart(self, user_id: str) -> Cart:
        return self._load(user_id, self.client.get(cart_key(user_id)))

    def mutate(self, user_id: str, fn: Callable[[Cart], T]) -> Tuple[Cart, T]:
        """
        Apply ``fn`` to the freshest cart and persist it atomically.

        If another writer touches the cart between our read and our write,
        the whole read-apply-write is retried, so concurrent mutations from
        the same user never overwrite each other.
        """
        key = cart_key(user_id)
        for attempt in range(1, self.max_retries + 1):
            with self.client.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    cart = self._load(user_id, pipe.get(key))
                    result = fn(cart)
                    cart.version += 1
                    pipe.multi()
                    pipe.set(key, cart.model_dump_json())
                    pipe.execute()
                    return cart, result
                except WatchError:
                    logger.debug("Cart %s changed during write, retry %d/%d", user_id, attempt, self.max_retries)
        logger.warning("Cart %s still contended after %d attempts", user_id, self.max_retries)
        raise CartConflictError("Cart was modified concurrently, please retry", details={"user_id": user_id})

    def clear(self, user_id: str) -> Cart:
        cart, _ = self.mutate(user_id, lambda c: c.clear())
        return cart

    def claim(self, user_id: str, version: int) -> Cart:
        """
        Empty the cart only if it is still at ``version``; returns the claimed lines.

        A cart that was emptied in the meantime (another checkout won) raises
        EmptyCartError, one that was edited raises CartConflictError.
        """
        def take(cart: Cart) -> Cart:
            if cart.version != version:
                if cart.is_empty():
                    raise EmptyCartError()
                raise CartConflictError("Cart changed during checkout, please retry",
                                        details={"user_id": user_id, "version": version})
            claimed = cart.model_copy(deep=True)
            cart.clear()
            return claimed

        _, claimed = self.mutate(user_id, take)
        return claimed

    def restore(self, user_id: str, claimed: Cart) -> Cart:
        """Put claimed lines back, unless the user has started a new cart since."""
        def put_back(cart: Cart) -> None:
            if cart.is_empty():
                cart.items = [line.model_copy() for line in claimed.items]
                cart.next_line_id = max(cart.next_line_id, claimed.next_line_id)

        cart, _ = self.mutate(user_id, put_back)
        return cart
