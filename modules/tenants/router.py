from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.database import get_db
from modules.tenants import schemas, service

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=schemas.TenantRead)
def create_tenant_endpoint(tenant_in: schemas.TenantCreate, db: Session = Depends(get_db)):
    return service.create_tenant(db, tenant_in)


@router.get("", response_model=list[schemas.TenantRead])
def list_tenants_endpoint(db: Session = Depends(get_db)):
    return service.list_tenants(db)


@router.get("/{tenant_id}", response_model=schemas.TenantRead)
def get_tenant_endpoint(tenant_id: str, db: Session = Depends(get_db)):
    return service.get_tenant(db, tenant_id)
