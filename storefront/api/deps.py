from storefront.db.session import SessionLocal
from storefront.store.cart_store import CartStore

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_cart_store() -> CartStore:
    return CartStore()
