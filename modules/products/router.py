from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.database import get_db
from core.tenancy import get_tenant_id
from modules.products import schemas, service

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=schemas.ProductRead)
def create_product_endpoint(
    product_in: schemas.ProductCreate, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.create_product(db, tenant_id, product_in)


@router.get("", response_model=list[schemas.ProductRead])
def list_products_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.list_products(db, tenant_id)


@router.get("/{product_id}", response_model=schemas.ProductRead)
def get_product_endpoint(product_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.get_product(db, tenant_id, product_id)


@router.put("/{product_id}", response_model=schemas.ProductRead)
def update_product_endpoint(
    product_id: str,
    product_in: schemas.ProductUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.update_product(db, tenant_id, product_id, product_in)


@router.delete("/{product_id}")
def delete_product_endpoint(product_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    service.delete_product(db, tenant_id, product_id)
    return {"message": "Product deleted"}
