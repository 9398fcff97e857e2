from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.tenancy import get_actor, get_tenant_id
from modules.alerts import schemas, service

router = APIRouter(prefix="/stock-alerts", tags=["stock-alerts"])
bom_alerts_router = APIRouter(prefix="/bom/alerts", tags=["bom-alerts"])


@router.get("", response_model=list[schemas.StockAlertRead])
def list_alerts_endpoint(
    status: Optional[Literal["pending", "acknowledged", "resolved", "dismissed"]] = None,
    severity: Optional[Literal["low", "critical", "out_of_stock"]] = None,
    material_id: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.list_alerts(db, tenant_id, status=status, severity=severity, material_id=material_id)


@router.get("/stats")
def alert_stats_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.alert_stats(db, tenant_id)


@router.post("/check")
def check_alerts_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.check_tenant(db, tenant_id)


@router.get("/{alert_id}", response_model=schemas.StockAlertRead)
def get_alert_endpoint(alert_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.get_alert(db, tenant_id, alert_id)


@router.post("/{alert_id}/acknowledge", response_model=schemas.StockAlertRead)
def acknowledge_alert_endpoint(
    alert_id: str,
    payload: Optional[schemas.AlertTransition] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    notes = payload.notes if payload else None
    return service.acknowledge_alert(db, tenant_id, alert_id, actor=actor, notes=notes)


@router.post("/{alert_id}/resolve", response_model=schemas.StockAlertRead)
def resolve_alert_endpoint(
    alert_id: str,
    payload: Optional[schemas.AlertTransition] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    notes = payload.notes if payload else None
    return service.resolve_alert(db, tenant_id, alert_id, actor=actor, notes=notes)


@router.post("/{alert_id}/dismiss", response_model=schemas.StockAlertRead)
def dismiss_alert_endpoint(
    alert_id: str,
    payload: Optional[schemas.AlertTransition] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    notes = payload.notes if payload else None
    return service.dismiss_alert(db, tenant_id, alert_id, actor=actor, notes=notes)


@bom_alerts_router.get("/active")
def active_alerts_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.get_active_alerts(db, tenant_id)


@bom_alerts_router.get("/predictive")
def predictive_alerts_endpoint(
    forecast_days: int = Query(7, ge=1, le=365),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.get_predictive_alerts(db, tenant_id, forecast_days)


@bom_alerts_router.get("/reorder-recommendations")
def reorder_recommendations_endpoint(
    target_days: int = Query(30, ge=1, le=365),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.get_reorder_recommendations(db, tenant_id, target_days)


@bom_alerts_router.get("/dashboard")
def alert_dashboard_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.get_alert_dashboard(db, tenant_id)
