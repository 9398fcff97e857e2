from typing import List

from sqlalchemy.orm import Session

from core.errors import NotFoundException
from modules.tenants import models, schemas


def create_tenant(db: Session, tenant_in: schemas.TenantCreate) -> models.Tenant:
    tenant = models.Tenant(name=tenant_in.name)
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


def list_tenants(db: Session) -> List[models.Tenant]:
    return db.query(models.Tenant).order_by(models.Tenant.name).all()


def get_tenant(db: Session, tenant_id: str) -> models.Tenant:
    tenant = db.query(models.Tenant).filter(models.Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFoundException("Tenant not found")
    return tenant
