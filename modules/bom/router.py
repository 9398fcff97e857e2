from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.settings import get_settings
from core.tenancy import get_tenant_id
from modules.bom import schemas
from modules.bom.service import BOMService

router = APIRouter(prefix="/bom", tags=["bom"])


@router.get("/products/{product_id}/available-quantity")
def available_quantity(product_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    bom_service = BOMService(settings=get_settings())
    return bom_service.available_quantity(db, tenant_id, product_id)


@router.post("/bulk-availability")
def bulk_availability(
    payload: schemas.BulkAvailabilityRequest, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    bom_service = BOMService(settings=get_settings())
    return bom_service.bulk_availability(db, tenant_id, payload.product_ids)


@router.get("/products/{product_id}/production-capacity")
def production_capacity(product_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    bom_service = BOMService(settings=get_settings())
    return bom_service.production_capacity(db, tenant_id, product_id)


@router.get("/products/{product_id}/feasibility")
def production_feasibility(
    product_id: str,
    quantity: int = Query(..., gt=0),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    bom_service = BOMService(settings=get_settings())
    return bom_service.feasibility(db, tenant_id, product_id, quantity)


@router.post("/batch-requirements")
def batch_requirements(
    payload: schemas.BatchRequirementsRequest, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    bom_service = BOMService(settings=get_settings())
    return bom_service.batch_requirements(db, tenant_id, payload.product_id, payload.quantity)


@router.post("/simulate-production")
def simulate_production(
    payload: schemas.BatchRequirementsRequest, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    bom_service = BOMService(settings=get_settings())
    return bom_service.simulate_production(db, tenant_id, payload.product_id, payload.quantity)


@router.post("/optimal-batch-size")
def optimal_batch_size(
    payload: schemas.OptimalBatchRequest, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    bom_service = BOMService(settings=get_settings())
    return bom_service.optimal_batch_size(
        db,
        tenant_id,
        payload.product_id,
        min_batch=payload.min_batch_size,
        max_batch=payload.max_batch_size,
        target=payload.target_quantity,
    )


@router.post("/multi-product-plan")
def multi_product_plan(
    payload: schemas.MultiProductPlanRequest, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    bom_service = BOMService(settings=get_settings())
    return bom_service.multi_product_plan(db, tenant_id, [item.model_dump() for item in payload.products])
