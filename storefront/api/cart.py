from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_cart_store
from storefront.core.auth import Identity, get_current_identity
from storefront.schemas import CartItemAdd, CartItemUpdate, CartBulkReq, CartRead
from storefront.services import cart as cart_service
from storefront.store.cart_store import CartStore

router = APIRouter()

@router.get("/v1/cart", response_model=CartRead)
def get_my_cart(identity: Identity = Depends(get_current_identity), store: CartStore = Depends(get_cart_store)):
    return cart_service.get_cart(store, identity.user_id)

@router.post("/v1/cart/items", response_model=CartRead, status_code=201)
def add_item(payload: CartItemAdd, identity: Identity = Depends(get_current_identity),
             db: Session = Depends(get_db), store: CartStore = Depends(get_cart_store)):
    return cart_service.add_item(db, store, identity.user_id, payload.product_id, payload.quantity)

@router.put("/v1/cart/items", response_model=CartRead)
def replace_items(payload: CartBulkReq, identity: Identity = Depends(get_current_identity),
                  db: Session = Depends(get_db), store: CartStore = Depends(get_cart_store)):
    entries = [(it.product_id, it.quantity) for it in payload.items]
    return cart_service.replace_items(db, store, identity.user_id, entries)

@router.patch("/v1/cart/items/{line_id}", response_model=CartRead)
def update_item(line_id: int, payload: CartItemUpdate, identity: Identity = Depends(get_current_identity),
                db: Session = Depends(get_db), store: CartStore = Depends(get_cart_store)):
    return cart_service.update_item(db, store, identity.user_id, line_id, payload.quantity)

@router.delete("/v1/cart/items/{line_id}", response_model=CartRead)
def remove_item(line_id: int, identity: Identity = Depends(get_current_identity),
                store: CartStore = Depends(get_cart_store)):
    return cart_service.remove_item(store, identity.user_id, line_id)

@router.post("/v1/cart/clear", response_model=CartRead)
def clear(identity: Identity = Depends(get_current_identity), store: CartStore = Depends(get_cart_store)):
    return cart_service.clear_cart(store, identity.user_id)
