from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_cart_store
from storefront.core.auth import Identity, get_current_identity, require_admin
from storefront.db.models import OrderStatus
from storefront.schemas import CheckoutReq, OrderRead, StatusUpdateReq, CancelReq, OrderStatsRead
from storefront.services import orders as ledger
from storefront.services.checkout import ShippingAddress, checkout as place_order
from storefront.store.cart_store import CartStore

router = APIRouter()

@router.post("/v1/orders/checkout", response_model=OrderRead, status_code=201)
def checkout(payload: CheckoutReq, identity: Identity = Depends(get_current_identity),
             db: Session = Depends(get_db), store: CartStore = Depends(get_cart_store)):
    address = ShippingAddress(**payload.shipping_address.model_dump())
    return place_order(db, store, identity.user_id, address,
                       payment_method=payload.payment_method, notes=payload.notes)

@router.get("/v1/orders", response_model=List[OrderRead])
def list_orders(status: Optional[OrderStatus] = None, limit: int = ledger.DEFAULT_LIST_LIMIT,
                identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    # admins see every order, customers only their own
    user_id = None if identity.is_admin else identity.user_id
    return ledger.list_orders(db, user_id=user_id, status=status, limit=limit)

@router.get("/v1/orders/stats/summary", response_model=OrderStatsRead, dependencies=[Depends(require_admin)])
def order_stats(start: Optional[datetime] = None, end: Optional[datetime] = None, db: Session = Depends(get_db)):
    return ledger.order_stats(db, start=start, end=end)

@router.get("/v1/orders/{order_id}", response_model=OrderRead)
def get_order(order_id: int, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return ledger.get_order(db, order_id, user_id=identity.user_id, is_admin=identity.is_admin)

@router.put("/v1/orders/{order_id}/status", response_model=OrderRead, dependencies=[Depends(require_admin)])
def update_status(order_id: int, payload: StatusUpdateReq, db: Session = Depends(get_db)):
    return ledger.update_status(db, order_id, payload.status, tracking_number=payload.tracking_number)

@router.put("/v1/orders/{order_id}/cancel", response_model=OrderRead)
def cancel(order_id: int, payload: CancelReq, identity: Identity = Depends(get_current_identity),
           db: Session = Depends(get_db)):
    return ledger.cancel_order(db, order_id, reason=payload.reason,
                               user_id=identity.user_id, is_admin=identity.is_admin)
