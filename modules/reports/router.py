from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from core.database import get_db
from core.tenancy import get_tenant_id
from modules.reports import service
from modules.reports.excel import build_report_excel

router = APIRouter(prefix="/bom/reports", tags=["reports"])

ReportName = Literal["recipe_costing", "production_efficiency", "material_usage", "stock_movement", "executive_dashboard"]


@router.get("/recipe-costing")
def recipe_costing(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.recipe_costing_report(db, tenant_id)


@router.get("/production-efficiency")
def production_efficiency(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.production_efficiency_report(db, tenant_id)


@router.get("/material-usage")
def material_usage(
    days: int = Query(30, ge=1, le=365), tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.material_usage_report(db, tenant_id, days)


@router.get("/stock-movement")
def stock_movement(
    days: int = Query(30, ge=1, le=365), tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.stock_movement_report(db, tenant_id, days)


@router.get("/executive-dashboard")
def executive_dashboard(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.executive_dashboard(db, tenant_id)


@router.get("/export")
def export_report(
    report: ReportName,
    days: int = Query(30, ge=1, le=365),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    data = service.generate_report(db, tenant_id, report, days)
    stream = build_report_excel(report, data)
    filename = f"{report}_{data['generated_at'][:10]}.xlsx"
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
