from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from storefront.api.deps import get_db
from storefront.core.auth import require_admin
from storefront.schemas import ProductCreate, ProductUpdate, ProductRead, RestockReq
from storefront.services import catalog

router = APIRouter()

@router.get('/{product_id}', response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return catalog.get_product(db, product_id)

@router.post('/', response_model=ProductRead, status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    return catalog.create_product(db, **payload.model_dump())

@router.patch('/{product_id}', response_model=ProductRead, dependencies=[Depends(require_admin)])
def update_product(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db)):
    return catalog.update_product(db, product_id, **payload.model_dump(exclude_unset=True))

@router.delete('/{product_id}', response_model=ProductRead, dependencies=[Depends(require_admin)])
def delete_product(product_id: int, db: Session = Depends(get_db)):
    # soft delete: orders keep referencing the product
    return catalog.soft_delete_product(db, product_id)

@router.post('/{product_id}/restock', response_model=ProductRead, dependencies=[Depends(require_admin)])
def restock(product_id: int, payload: RestockReq, db: Session = Depends(get_db)):
    return catalog.restock(db, product_id, payload.quantity)
