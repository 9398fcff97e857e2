from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.tenancy import get_tenant_id
from modules.analytics import service

router = APIRouter(prefix="/bom/analytics", tags=["analytics"])


@router.get("/stock-status")
def stock_status(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.stock_status_summary(db, tenant_id)


@router.get("/categories")
def categories(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.materials_by_category(db, tenant_id)


@router.get("/usage-trends")
def usage_trends(
    days: int = Query(30, ge=1, le=365), tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.usage_trends(db, tenant_id, days)


@router.get("/material-usage")
def material_usage(
    material_id: Optional[str] = None,
    days: int = Query(30, ge=1, le=365),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.material_usage(db, tenant_id, material_id=material_id, days=days)


@router.get("/cost-analysis")
def cost_analysis(
    category: Optional[List[str]] = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.cost_analysis(db, tenant_id, categories=category)


@router.get("/turnover-rate")
def turnover_rate(
    days: int = Query(30, ge=1, le=365), tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.inventory_turnover(db, tenant_id, days)


@router.get("/attention")
def attention(
    days: int = Query(30, ge=1, le=365), tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.materials_requiring_attention(db, tenant_id, days)
