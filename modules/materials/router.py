from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from core.database import get_db
from core.tenancy import get_actor, get_tenant_id
from modules.materials import schemas, service
from modules.reports.excel import build_report_excel

router = APIRouter(prefix="/materials", tags=["materials"])


@router.post("", response_model=schemas.MaterialRead)
def create_material_endpoint(
    material_in: schemas.MaterialCreate, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.serialize_material(service.create_material(db, tenant_id, material_in))


@router.get("")
def list_materials_endpoint(
    search: Optional[str] = None,
    category: Optional[str] = None,
    unit: Optional[str] = None,
    status: Optional[Literal["low_stock", "out_of_stock", "normal"]] = None,
    sort_by: str = "name",
    sort_order: Literal["asc", "desc"] = "asc",
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, le=100),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.list_materials(
        db,
        tenant_id,
        search=search,
        category=category,
        unit=unit,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        per_page=per_page,
    )


@router.post("/bulk")
def bulk_create_materials_endpoint(
    payload: schemas.MaterialBulkCreate, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.bulk_create_materials(db, tenant_id, payload.materials)


@router.get("/low-stock", response_model=list[schemas.MaterialRead])
def low_stock_materials_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return [service.serialize_material(m) for m in service.get_low_stock(db, tenant_id)]


@router.get("/categories")
def material_categories_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return {"categories": service.get_categories(db, tenant_id)}


def _xlsx_response(stream, name: str, generated_at: str) -> StreamingResponse:
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={name}_{generated_at[:10]}.xlsx"},
    )


@router.get("/export")
def export_materials_endpoint(
    category: Optional[str] = None,
    search: Optional[str] = None,
    low_stock: bool = False,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    data = service.export_materials(db, tenant_id, category=category, search=search, low_stock=low_stock)
    return _xlsx_response(build_report_excel("materials", data), "materials", data["generated_at"])


@router.get("/low-stock/report")
def low_stock_report_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.low_stock_report(db, tenant_id)


@router.get("/low-stock/export")
def low_stock_export_endpoint(tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    data = service.low_stock_report(db, tenant_id)
    return _xlsx_response(build_report_excel("low_stock", data), "low_stock", data["generated_at"])


@router.get("/{material_id}", response_model=schemas.MaterialRead)
def get_material_endpoint(material_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.serialize_material(service.get_material_model(db, tenant_id, material_id))


@router.put("/{material_id}", response_model=schemas.MaterialRead)
def update_material_endpoint(
    material_id: str,
    material_in: schemas.MaterialUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.serialize_material(service.update_material(db, tenant_id, material_id, material_in))


@router.delete("/{material_id}")
def delete_material_endpoint(material_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    service.delete_material(db, tenant_id, material_id)
    return {"message": "Material deleted"}


@router.post("/{material_id}/adjust-stock")
def adjust_stock_endpoint(
    material_id: str,
    adjustment: schemas.StockAdjustment,
    tenant_id: str = Depends(get_tenant_id),
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return service.adjust_stock(db, tenant_id, material_id, adjustment, user_id=actor)


@router.get("/{material_id}/transactions", response_model=list[schemas.InventoryTransactionRead])
def list_transactions_endpoint(
    material_id: str,
    transaction_type: Optional[schemas.TransactionType] = None,
    limit: int = Query(50, ge=1, le=500),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.list_transactions(db, tenant_id, material_id, transaction_type=transaction_type, limit=limit)
