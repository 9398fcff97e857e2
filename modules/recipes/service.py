import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.errors import BusinessRuleException, InsufficientStockException, NotFoundException, ValidationAppException
from core.settings import as_float, quantize_quantity, to_decimal
from modules.materials import models as material_models
from modules.materials import service as material_service
from modules.products import service as product_service
from modules.recipes import models, schemas

logger = logging.getLogger(__name__)


def serialize_component(component: models.RecipeMaterial) -> Dict[str, Any]:
    material = component.material
    return {
        "id": component.id,
        "material_id": component.material_id,
        "material_name": material.name if material else "Unknown",
        "material_unit": material.unit if material else component.unit,
        "quantity_required": as_float(component.quantity_required),
        "unit": component.unit,
        "waste_percentage": as_float(component.waste_percentage, 2),
        "waste_amount": as_float(component.waste_amount),
        "effective_quantity": as_float(component.effective_need, 4),
        "unit_cost": as_float(material.unit_cost, 4) if material else 0.0,
        "total_cost": as_float(component.total_cost, 2),
        "available_stock": as_float(material.stock_quantity) if material else 0.0,
        "notes": component.notes,
    }


def serialize_recipe(recipe: models.Recipe) -> Dict[str, Any]:
    return {
        "id": recipe.id,
        "tenant_id": recipe.tenant_id,
        "product_id": recipe.product_id,
        "product_name": recipe.product.name if recipe.product else None,
        "name": recipe.name,
        "description": recipe.description,
        "yield_quantity": as_float(recipe.yield_quantity),
        "yield_unit": recipe.yield_unit,
        "is_active": recipe.is_active,
        "notes": recipe.notes,
        "total_cost": as_float(recipe.total_cost(), 2),
        "cost_per_unit": as_float(recipe.cost_per_unit(), 2),
        "components": [serialize_component(c) for c in recipe.components],
    }


def get_recipe_model(db: Session, tenant_id: str, recipe_id: str) -> models.Recipe:
    recipe = (
        db.query(models.Recipe)
        .filter(models.Recipe.id == recipe_id, models.Recipe.tenant_id == tenant_id)
        .first()
    )
    if not recipe:
        raise NotFoundException("Recipe not found")
    return recipe


def get_active_recipe(db: Session, tenant_id: str, product_id: str) -> Optional[models.Recipe]:
    return (
        db.query(models.Recipe)
        .filter(
            models.Recipe.tenant_id == tenant_id,
            models.Recipe.product_id == product_id,
            models.Recipe.is_active.is_(True),
        )
        .first()
    )


def ensure_materials_available(recipe: models.Recipe) -> None:
    # Relationship loads bypass the soft-delete filter, so deleted materials show up here
    deleted = [c.material.name for c in recipe.components if c.material is not None and c.material.deleted_at is not None]
    if deleted:
        raise BusinessRuleException(
            f"Recipe '{recipe.name}' uses deleted material(s): {', '.join(deleted)}",
            rule="recipe_material_deleted",
        )


def usable_components(recipe: models.Recipe) -> List[models.RecipeMaterial]:
    """Components of ``recipe`` that production and BOM maths can run on."""
    components = list(recipe.components or [])
    if not components:
        raise ValidationAppException(f"Recipe '{recipe.name}' has no components", details={"recipe_id": recipe.id})
    ensure_materials_available(recipe)
    return components


def _build_component(
    db: Session, tenant_id: str, recipe: models.Recipe, component_in: schemas.RecipeComponentCreate
) -> models.RecipeMaterial:
    material = material_service.get_material_model(db, tenant_id, component_in.material_id)
    if any(existing.material_id == material.id for existing in recipe.components):
        raise ValidationAppException(
            "Material is already added to this recipe. Update the existing component instead.",
            details={"material_id": material.id},
        )
    component = models.RecipeMaterial(
        tenant_id=tenant_id,
        material_id=material.id,
        material=material,
        quantity_required=to_decimal(component_in.quantity_required),
        unit=component_in.unit,
        waste_percentage=to_decimal(component_in.waste_percentage),
        notes=component_in.notes,
    )
    recipe.components.append(component)
    return component


def _deactivate_siblings(db: Session, recipe: models.Recipe) -> None:
    (
        db.query(models.Recipe)
        .filter(
            models.Recipe.tenant_id == recipe.tenant_id,
            models.Recipe.product_id == recipe.product_id,
            models.Recipe.id != recipe.id,
            models.Recipe.is_active.is_(True),
        )
        .update({models.Recipe.is_active: False}, synchronize_session="fetch")
    )


def create_recipe(db: Session, tenant_id: str, recipe_in: schemas.RecipeCreate) -> models.Recipe:
    product = product_service.get_product(db, tenant_id, recipe_in.product_id)
    recipe = models.Recipe(
        tenant_id=tenant_id,
        product_id=product.id,
        product=product,
        name=recipe_in.name,
        description=recipe_in.description,
        yield_quantity=to_decimal(recipe_in.yield_quantity),
        yield_unit=recipe_in.yield_unit,
        is_active=recipe_in.is_active,
        notes=recipe_in.notes,
    )
    try:
        for component_in in recipe_in.components:
            _build_component(db, tenant_id, recipe, component_in)
        db.add(recipe)
        db.flush()
        if recipe.is_active:
            _deactivate_siblings(db, recipe)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(recipe)
    logger.info("Created recipe %s for product %s (active=%s)", recipe.id, product.id, recipe.is_active)
    return recipe


def clone_recipe(db: Session, tenant_id: str, recipe_id: str, clone_in: schemas.RecipeClone) -> models.Recipe:
    """Copy a recipe and its components into a new inactive recipe for the same product."""
    original = get_recipe_model(db, tenant_id, recipe_id)
    ensure_materials_available(original)
    recipe = models.Recipe(
        tenant_id=tenant_id,
        product_id=original.product_id,
        product=original.product,
        name=clone_in.name or f"{original.name} (Copy)",
        description=original.description,
        yield_quantity=to_decimal(clone_in.yield_quantity) if clone_in.yield_quantity else original.yield_quantity,
        yield_unit=clone_in.yield_unit or original.yield_unit,
        is_active=False,
        notes=clone_in.notes if clone_in.notes is not None else original.notes,
    )
    for component in original.components:
        recipe.components.append(
            models.RecipeMaterial(
                tenant_id=tenant_id,
                material_id=component.material_id,
                material=component.material,
                quantity_required=component.quantity_required,
                unit=component.unit,
                waste_percentage=component.waste_percentage,
                notes=component.notes,
            )
        )
    try:
        db.add(recipe)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(recipe)
    logger.info("Cloned recipe %s into %s", original.id, recipe.id)
    return recipe


def list_recipes(
    db: Session,
    tenant_id: str,
    search: Optional[str] = None,
    product_id: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[models.Recipe]:
    query = db.query(models.Recipe).filter(models.Recipe.tenant_id == tenant_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Recipe.name.ilike(pattern), models.Recipe.description.ilike(pattern)))
    if product_id:
        query = query.filter(models.Recipe.product_id == product_id)
    if is_active is not None:
        query = query.filter(models.Recipe.is_active.is_(is_active))
    return query.order_by(models.Recipe.name).all()


def recipes_for_product(db: Session, tenant_id: str, product_id: str) -> List[models.Recipe]:
    product_service.get_product(db, tenant_id, product_id)
    return (
        db.query(models.Recipe)
        .filter(models.Recipe.tenant_id == tenant_id, models.Recipe.product_id == product_id)
        .order_by(models.Recipe.is_active.desc(), models.Recipe.name)
        .all()
    )


def update_recipe(db: Session, tenant_id: str, recipe_id: str, recipe_in: schemas.RecipeUpdate) -> models.Recipe:
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    for field, value in recipe_in.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if field == "yield_quantity":
            value = to_decimal(value)
        setattr(recipe, field, value)
    db.commit()
    db.refresh(recipe)
    return recipe


def delete_recipe(db: Session, tenant_id: str, recipe_id: str) -> None:
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    if recipe.is_active:
        raise BusinessRuleException(
            f"Cannot delete recipe '{recipe.name}'. Active recipes cannot be deleted. Deactivate it first.",
            rule="recipe_active",
        )
    recipe.soft_delete()
    db.commit()
    logger.info("Soft-deleted recipe %s for tenant %s", recipe_id, tenant_id)


def activate_recipe(db: Session, tenant_id: str, recipe_id: str) -> models.Recipe:
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    ensure_materials_available(recipe)
    try:
        _deactivate_siblings(db, recipe)
        recipe.is_active = True
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(recipe)
    logger.info("Activated recipe %s for product %s", recipe.id, recipe.product_id)
    return recipe


def deactivate_recipe(db: Session, tenant_id: str, recipe_id: str) -> models.Recipe:
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    recipe.is_active = False
    db.commit()
    db.refresh(recipe)
    return recipe


def _get_component(db: Session, tenant_id: str, recipe_id: str, component_id: str) -> models.RecipeMaterial:
    get_recipe_model(db, tenant_id, recipe_id)
    component = (
        db.query(models.RecipeMaterial)
        .filter(
            models.RecipeMaterial.id == component_id,
            models.RecipeMaterial.recipe_id == recipe_id,
            models.RecipeMaterial.tenant_id == tenant_id,
        )
        .first()
    )
    if not component:
        raise NotFoundException("Recipe component not found")
    return component


def add_component(
    db: Session, tenant_id: str, recipe_id: str, component_in: schemas.RecipeComponentCreate
) -> models.RecipeMaterial:
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    component = _build_component(db, tenant_id, recipe, component_in)
    db.commit()
    db.refresh(component)
    return component


def update_component(
    db: Session, tenant_id: str, recipe_id: str, component_id: str, component_in: schemas.RecipeComponentUpdate
) -> models.RecipeMaterial:
    component = _get_component(db, tenant_id, recipe_id, component_id)
    for field, value in component_in.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if field in ("quantity_required", "waste_percentage"):
            value = to_decimal(value)
        setattr(component, field, value)
    db.commit()
    db.refresh(component)
    return component


def remove_component(db: Session, tenant_id: str, recipe_id: str, component_id: str) -> None:
    component = _get_component(db, tenant_id, recipe_id, component_id)
    db.delete(component)
    db.commit()


def calculate_cost(db: Session, tenant_id: str, recipe_id: str) -> Dict[str, Any]:
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    return {
        "recipe_id": recipe.id,
        "recipe_name": recipe.name,
        "total_cost": as_float(recipe.total_cost(), 2),
        "cost_per_unit": as_float(recipe.cost_per_unit(), 2),
        "yield_quantity": as_float(recipe.yield_quantity),
        "yield_unit": recipe.yield_unit,
    }


def cost_breakdown(db: Session, tenant_id: str, recipe_id: str) -> Dict[str, Any]:
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    total_cost = recipe.total_cost()
    components = []
    for component in recipe.components:
        share = component.total_cost / total_cost * 100 if total_cost > 0 else Decimal("0")
        entry = serialize_component(component)
        entry["cost_percentage"] = as_float(share, 2)
        components.append(entry)
    components.sort(key=lambda c: c["total_cost"], reverse=True)
    result = calculate_cost(db, tenant_id, recipe_id)
    result["components"] = components
    return result


def produce(
    db: Session,
    tenant_id: str,
    recipe_id: str,
    run: schemas.ProductionRun,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Deduct every component for ``run.quantity`` units in one transaction."""
    recipe = get_recipe_model(db, tenant_id, recipe_id)
    components = usable_components(recipe)

    quantity = to_decimal(run.quantity)
    needs = {component.id: quantize_quantity(component.effective_need * quantity) for component in components}
    shortages = []
    for component in components:
        required = needs[component.id]
        available = to_decimal(component.material.stock_quantity)
        if available < required:
            shortages.append(
                {
                    "material_id": component.material_id,
                    "material_name": component.material.name,
                    "required_quantity": as_float(required),
                    "available_quantity": as_float(available),
                    "shortage": as_float(required - available),
                }
            )
    if shortages:
        first = shortages[0]
        exc = InsufficientStockException(first["material_name"], first["required_quantity"], first["available_quantity"])
        exc.details["shortages"] = shortages
        logger.warning("Production of recipe %s x%s rejected: %d short material(s)", recipe.id, run.quantity, len(shortages))
        raise exc

    notes = run.notes or f"Production deduction for recipe: {recipe.name} (Qty: {run.quantity})"
    transactions: List[material_models.InventoryTransaction] = []
    try:
        for component in components:
            transactions.append(
                material_service.apply_stock_change(
                    db,
                    component.material,
                    "deduction",
                    needs[component.id],
                    "production",
                    notes=notes,
                    user_id=user_id,
                    reference_type="recipe",
                    reference_id=recipe.id,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Produced %s unit(s) of recipe %s", run.quantity, recipe.id)
    return {
        "success": True,
        "recipe_id": recipe.id,
        "produced_quantity": run.quantity,
        "transactions": [
            {
                "id": t.id,
                "material_id": t.material_id,
                "quantity_before": as_float(t.quantity_before),
                "quantity_change": as_float(t.quantity_change),
                "quantity_after": as_float(t.quantity_after),
            }
            for t in transactions
        ],
    }
