import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session

from core.errors import BusinessRuleException, InsufficientStockException, NotFoundException, ValidationAppException
from core.models import utcnow
from core.settings import Settings, as_float, get_settings, quantize_quantity, to_decimal
from modules.alerts import service as alert_service
from modules.materials import models, schemas

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {"name", "sku", "category", "stock_quantity", "reorder_level", "unit_cost", "created_at"}


def serialize_material(material: models.Material, settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    return {
        "id": material.id,
        "tenant_id": material.tenant_id,
        "name": material.name,
        "sku": material.sku,
        "description": material.description,
        "category": material.category,
        "unit": material.unit,
        "stock_quantity": as_float(material.stock_quantity),
        "reorder_level": as_float(material.reorder_level),
        "unit_cost": as_float(material.unit_cost, 4),
        "supplier": material.supplier,
        "is_low_stock": material.is_low_stock,
        "stock_status": models.classify_stock(
            material.stock_quantity,
            material.reorder_level,
            settings.critical_stock_ratio,
            settings.excess_stock_ratio,
        ),
        "stock_value": as_float(material.stock_value, 2),
    }


def _tenant_query(db: Session, tenant_id: str):
    return db.query(models.Material).filter(models.Material.tenant_id == tenant_id)


def _ensure_unique_sku(db: Session, tenant_id: str, sku: Optional[str], material_id: Optional[str] = None) -> None:
    if not sku:
        return
    # Deleted rows still hold their SKU in the unique constraint
    query = (
        db.query(models.Material)
        .execution_options(include_deleted=True)
        .filter(models.Material.tenant_id == tenant_id, models.Material.sku == sku)
    )
    if material_id:
        query = query.filter(models.Material.id != material_id)
    if query.first():
        raise ValidationAppException(f"The SKU '{sku}' is already used by another material in this tenant")


def get_material_model(db: Session, tenant_id: str, material_id: str) -> models.Material:
    material = _tenant_query(db, tenant_id).filter(models.Material.id == material_id).first()
    if not material:
        raise NotFoundException("Material not found")
    return material


def create_material(db: Session, tenant_id: str, material_in: schemas.MaterialCreate) -> models.Material:
    _ensure_unique_sku(db, tenant_id, material_in.sku)
    material = models.Material(
        tenant_id=tenant_id,
        name=material_in.name,
        sku=material_in.sku,
        description=material_in.description,
        category=material_in.category,
        unit=material_in.unit,
        stock_quantity=quantize_quantity(material_in.stock_quantity),
        reorder_level=to_decimal(material_in.reorder_level),
        unit_cost=to_decimal(material_in.unit_cost),
        supplier=material_in.supplier,
    )
    db.add(material)
    db.commit()
    db.refresh(material)
    logger.info("Created material %s (%s) for tenant %s", material.id, material.name, tenant_id)
    return material


def bulk_create_materials(db: Session, tenant_id: str, rows: List[dict]) -> Dict[str, Any]:
    created = []
    errors = {}
    for index, row in enumerate(rows):
        try:
            material_in = schemas.MaterialCreate(**row)
            created.append(serialize_material(create_material(db, tenant_id, material_in)))
        except ValidationError as exc:
            errors[index] = {"data": row, "error": "; ".join(err["msg"] for err in exc.errors())}
        except ValidationAppException as exc:
            db.rollback()
            errors[index] = {"data": row, "error": exc.message}
    if errors:
        logger.warning("Bulk material import for tenant %s rejected %d row(s)", tenant_id, len(errors))
    return {"created": created, "errors": errors}


def list_materials(
    db: Session,
    tenant_id: str,
    search: Optional[str] = None,
    category: Optional[str] = None,
    unit: Optional[str] = None,
    status: Optional[str] = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int = 1,
    per_page: Optional[int] = None,
) -> Dict[str, Any]:
    per_page = min(max(1, per_page or get_settings().default_page_size), 100)
    page = max(1, page)
    query = _tenant_query(db, tenant_id)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                models.Material.name.ilike(pattern),
                models.Material.sku.ilike(pattern),
                models.Material.supplier.ilike(pattern),
            )
        )
    if category:
        query = query.filter(models.Material.category == category)
    if unit:
        query = query.filter(models.Material.unit == unit)
    if status == "low_stock":
        query = query.filter(models.Material.stock_quantity < models.Material.reorder_level)
    elif status == "out_of_stock":
        query = query.filter(models.Material.stock_quantity <= 0)
    elif status == "normal":
        query = query.filter(models.Material.stock_quantity >= models.Material.reorder_level)

    if sort_by not in SORTABLE_FIELDS:
        raise ValidationAppException(f"Cannot sort by '{sort_by}'")
    order = desc if sort_order == "desc" else asc
    query = query.order_by(order(getattr(models.Material, sort_by)))

    total = query.count()
    materials = query.offset((page - 1) * per_page).limit(per_page).all()
    last_page = max(1, (total + per_page - 1) // per_page)
    return {
        "data": [serialize_material(m) for m in materials],
        "meta": {"current_page": page, "last_page": last_page, "per_page": per_page, "total": total},
    }


def update_material(
    db: Session, tenant_id: str, material_id: str, material_in: schemas.MaterialUpdate
) -> models.Material:
    material = get_material_model(db, tenant_id, material_id)
    data = material_in.model_dump(exclude_unset=True)
    if "sku" in data:
        _ensure_unique_sku(db, tenant_id, data["sku"], material.id)
    for field, value in data.items():
        if field in ("reorder_level", "unit_cost") and value is not None:
            value = to_decimal(value)
        setattr(material, field, value)
    db.commit()
    db.refresh(material)
    return material


def delete_material(db: Session, tenant_id: str, material_id: str) -> None:
    material = get_material_model(db, tenant_id, material_id)
    active = material.active_recipes()
    if active:
        names = ", ".join(recipe.name for recipe in active)
        raise BusinessRuleException(
            f"Cannot delete material '{material.name}'. It is used in active recipe(s): {names}",
            rule="material_in_active_recipe",
        )
    material.soft_delete()
    db.commit()
    logger.info("Soft-deleted material %s for tenant %s", material_id, tenant_id)


def apply_stock_change(
    db: Session,
    material: models.Material,
    transaction_type: str,
    quantity,
    reason: str,
    notes: Optional[str] = None,
    user_id: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> models.InventoryTransaction:
    """Mutate stock and append the matching ledger row without committing.

    Callers own the transaction: a raised exception must be followed by a rollback
    so stock and ledger stay untouched.
    """
    quantity = quantize_quantity(quantity)
    if transaction_type == "restock":
        change = abs(quantity)
    elif transaction_type == "deduction":
        change = -abs(quantity)
    elif transaction_type == "adjustment":
        change = quantity
    else:
        raise ValidationAppException(f"Invalid transaction type: {transaction_type}")

    before = quantize_quantity(material.stock_quantity)
    after = before + change
    if after < 0:
        raise InsufficientStockException(material.name, abs(change), before)

    material.stock_quantity = after
    transaction = models.InventoryTransaction(
        tenant_id=material.tenant_id,
        material_id=material.id,
        transaction_type=transaction_type,
        quantity_before=before,
        quantity_change=change,
        quantity_after=after,
        reason=reason,
        notes=notes,
        user_id=user_id,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.add(transaction)
    db.flush()
    alert_service.evaluate_material(db, material, previous_stock=before)
    logger.info(
        "Stock %s on material %s: %s -> %s (%s)",
        transaction_type,
        material.id,
        before,
        after,
        reason,
    )
    return transaction


def adjust_stock(
    db: Session,
    tenant_id: str,
    material_id: str,
    adjustment: schemas.StockAdjustment,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    material = get_material_model(db, tenant_id, material_id)
    try:
        transaction = apply_stock_change(
            db,
            material,
            adjustment.type,
            adjustment.quantity,
            adjustment.reason,
            notes=adjustment.notes,
            user_id=user_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(material)
    return {
        "material": serialize_material(material),
        "transaction": schemas.InventoryTransactionRead.model_validate(transaction).model_dump(),
    }


def list_transactions(
    db: Session,
    tenant_id: str,
    material_id: str,
    transaction_type: Optional[str] = None,
    limit: int = 50,
) -> List[models.InventoryTransaction]:
    get_material_model(db, tenant_id, material_id)
    query = db.query(models.InventoryTransaction).filter(
        models.InventoryTransaction.tenant_id == tenant_id,
        models.InventoryTransaction.material_id == material_id,
    )
    if transaction_type:
        query = query.filter(models.InventoryTransaction.transaction_type == transaction_type)
    return query.order_by(models.InventoryTransaction.created_at.desc()).limit(limit).all()


def get_low_stock(db: Session, tenant_id: str) -> List[models.Material]:
    return (
        _tenant_query(db, tenant_id)
        .filter(models.Material.stock_quantity < models.Material.reorder_level)
        .order_by(models.Material.stock_quantity.asc())
        .all()
    )


def get_categories(db: Session, tenant_id: str) -> List[str]:
    rows = (
        _tenant_query(db, tenant_id)
        .filter(models.Material.category.isnot(None))
        .with_entities(models.Material.category)
        .distinct()
        .order_by(models.Material.category)
        .all()
    )
    return [row[0] for row in rows]


def total_stock_value(materials: List[models.Material]) -> Decimal:
    return sum((m.stock_value for m in materials), Decimal("0"))


def export_materials(
    db: Session,
    tenant_id: str,
    category: Optional[str] = None,
    search: Optional[str] = None,
    low_stock: bool = False,
) -> Dict[str, Any]:
    query = _tenant_query(db, tenant_id)
    if category:
        query = query.filter(models.Material.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Material.name.ilike(pattern), models.Material.sku.ilike(pattern)))
    if low_stock:
        query = query.filter(models.Material.stock_quantity < models.Material.reorder_level)
    materials = query.order_by(models.Material.name).all()
    rows = [serialize_material(m) for m in materials]
    return {
        "report_type": "Material Export",
        "summary": {
            "total_materials": len(rows),
            "total_stock_value": as_float(total_stock_value(materials), 2),
        },
        "materials": rows,
        "generated_at": utcnow().isoformat(),
    }


def low_stock_report(db: Session, tenant_id: str) -> Dict[str, Any]:
    rows = []
    total_cost = Decimal("0")
    for material in get_low_stock(db, tenant_id):
        shortfall = to_decimal(material.reorder_level) - to_decimal(material.stock_quantity)
        reorder_cost = shortfall * to_decimal(material.unit_cost)
        total_cost += reorder_cost
        rows.append(
            {
                "material_id": material.id,
                "sku": material.sku,
                "name": material.name,
                "category": material.category,
                "current_stock": as_float(material.stock_quantity),
                "reorder_level": as_float(material.reorder_level),
                "shortfall": as_float(shortfall),
                "unit": material.unit,
                "unit_cost": as_float(material.unit_cost, 4),
                "reorder_cost": as_float(reorder_cost, 2),
                "supplier": material.supplier,
            }
        )
    return {
        "report_type": "Low Stock Alert",
        "summary": {"total_materials": len(rows), "total_reorder_cost": as_float(total_cost, 2)},
        "materials": rows,
        "generated_at": utcnow().isoformat(),
    }
