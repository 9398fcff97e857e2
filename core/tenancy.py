from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from core.database import get_db
from core.errors import NotFoundException
from modules.tenants.models import Tenant


def get_tenant_id(tenant_id: str, db: Session = Depends(get_db)) -> str:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFoundException("Tenant not found")
    return tenant.id


def get_actor(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id or None
