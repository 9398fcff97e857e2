import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from core.errors import AppException, ValidationAppException
from core.models import utcnow
from core.settings import as_float, get_settings, to_decimal
from modules.alerts import service as alert_service
from modules.analytics import service as analytics_service
from modules.bom.service import BOMService
from modules.products.models import Product
from modules.products.types import InventoryManagementType
from modules.recipes import service as recipe_service
from modules.recipes.models import Recipe

logger = logging.getLogger(__name__)

REPORTS = ("recipe_costing", "production_efficiency", "material_usage", "stock_movement", "executive_dashboard")


def efficiency_score(capacity: int, average_waste) -> float:
    """Capacity weighs 70 points (full at 100 units), low waste weighs 30."""
    capacity_score = min(Decimal(capacity) / 100, Decimal("1")) * 70
    waste_score = max(Decimal("0"), 1 - to_decimal(average_waste) / 100) * 30
    return as_float(capacity_score + waste_score, 2)


def _average(values: List[float], decimals: int = 2) -> float:
    if not values:
        return 0.0
    return round(sum(values) / len(values), decimals)


def _bom_products(db: Session, tenant_id: str) -> List[Product]:
    return (
        db.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.inventory_management_type == InventoryManagementType.BOM.value,
        )
        .order_by(Product.name)
        .all()
    )


def recipe_costing_report(db: Session, tenant_id: str) -> Dict[str, Any]:
    recipes = (
        db.query(Recipe)
        .join(Product, Recipe.product_id == Product.id)
        .filter(
            Recipe.tenant_id == tenant_id,
            Recipe.is_active.is_(True),
            Product.deleted_at.is_(None),
        )
        .order_by(Recipe.name)
        .all()
    )
    rows = []
    for recipe in recipes:
        breakdown = recipe_service.cost_breakdown(db, tenant_id, recipe.id)
        components = breakdown["components"]
        rows.append(
            {
                "recipe_id": recipe.id,
                "recipe_name": recipe.name,
                "product_id": recipe.product_id,
                "product_name": recipe.product.name if recipe.product else None,
                "yield_quantity": breakdown["yield_quantity"],
                "yield_unit": breakdown["yield_unit"],
                "total_cost": breakdown["total_cost"],
                "cost_per_unit": breakdown["cost_per_unit"],
                "component_count": len(components),
                "components": components,
                "most_expensive_component": components[0] if components else None,
            }
        )
    rows.sort(key=lambda r: r["total_cost"], reverse=True)
    return {
        "report_type": "Recipe Costing Report",
        "summary": {
            "total_active_recipes": len(rows),
            "average_recipe_cost": _average([r["total_cost"] for r in rows]),
            "highest_cost_recipe": {"recipe_name": rows[0]["recipe_name"], "total_cost": rows[0]["total_cost"]}
            if rows
            else None,
            "lowest_cost_recipe": {"recipe_name": rows[-1]["recipe_name"], "total_cost": rows[-1]["total_cost"]}
            if rows
            else None,
        },
        "recipes": rows,
        "generated_at": utcnow().isoformat(),
    }


def production_efficiency_report(db: Session, tenant_id: str) -> Dict[str, Any]:
    bom_service = BOMService(settings=get_settings())
    rows = []
    for product in _bom_products(db, tenant_id):
        try:
            availability = bom_service.available_quantity(db, tenant_id, product.id)
        except AppException as exc:
            logger.info("Product %s left out of efficiency report: %s", product.id, exc.message)
            continue
        recipe = recipe_service.get_active_recipe(db, tenant_id, product.id)
        wastes = [to_decimal(c.waste_percentage) for c in recipe.components]
        average_waste = sum(wastes, Decimal("0")) / len(wastes)
        capacity = availability["available_quantity"]
        rows.append(
            {
                "product_id": product.id,
                "product_name": product.name,
                "recipe_name": recipe.name,
                "production_capacity": capacity,
                "recipe_cost": as_float(recipe.total_cost(), 2),
                "cost_per_unit": as_float(recipe.cost_per_unit(), 2),
                "component_count": len(wastes),
                "components_with_waste": sum(1 for w in wastes if w > 0),
                "average_waste_percentage": as_float(average_waste, 2),
                "bottleneck_material": availability["bottleneck_material"]["material_name"],
                "efficiency_score": efficiency_score(capacity, average_waste),
            }
        )
    rows.sort(key=lambda r: r["efficiency_score"], reverse=True)
    return {
        "report_type": "Production Efficiency Report",
        "summary": {
            "total_bom_products": len(rows),
            "average_efficiency_score": _average([r["efficiency_score"] for r in rows]),
            "products_at_full_capacity": sum(1 for r in rows if r["production_capacity"] > 100),
            "products_with_waste": sum(1 for r in rows if r["average_waste_percentage"] > 0),
        },
        "efficiency_data": rows,
        "top_efficient_products": rows[:5],
        "least_efficient_products": list(reversed(rows))[:5],
        "generated_at": utcnow().isoformat(),
    }


def material_usage_report(db: Session, tenant_id: str, days: int = 30) -> Dict[str, Any]:
    transactions = analytics_service.window_transactions(db, tenant_id, days)
    grouped = defaultdict(list)
    for txn in transactions:
        grouped[txn.material_id].append(txn)

    rows = []
    for txns in grouped.values():
        material = txns[0].material
        # Transactions arrive newest first
        opening = to_decimal(txns[-1].quantity_before)
        closing = to_decimal(material.stock_quantity)
        received = sum((to_decimal(t.quantity_change) for t in txns if to_decimal(t.quantity_change) > 0), Decimal("0"))
        consumed = sum((-to_decimal(t.quantity_change) for t in txns if to_decimal(t.quantity_change) < 0), Decimal("0"))
        rows.append(
            {
                "material_id": material.id,
                "material_name": material.name,
                "sku": material.sku,
                "category": material.category,
                "unit": material.unit,
                "opening_stock": as_float(opening),
                "closing_stock": as_float(closing),
                "total_received": as_float(received),
                "total_consumed": as_float(consumed),
                "net_change": as_float(closing - opening),
                "transaction_count": len(txns),
                "average_daily_usage": as_float(consumed / days),
            }
        )
    rows.sort(key=lambda r: r["total_consumed"], reverse=True)
    return {
        "report_type": "Material Usage Report",
        "period": analytics_service.report_period(days),
        "summary": {
            "total_materials_used": len(rows),
            "total_transactions": len(transactions),
            "total_quantity_consumed": round(sum(r["total_consumed"] for r in rows), 3),
            "total_quantity_received": round(sum(r["total_received"] for r in rows), 3),
        },
        "material_details": rows,
        "generated_at": utcnow().isoformat(),
    }


def stock_movement_report(db: Session, tenant_id: str, days: int = 30) -> Dict[str, Any]:
    trends = analytics_service.usage_trends(db, tenant_id, days)
    transactions = analytics_service.window_transactions(db, tenant_id, days)
    net = sum((to_decimal(t.quantity_change) for t in transactions), Decimal("0"))
    return {
        "report_type": "Stock Movement Report",
        "period": trends["period"],
        "summary": {
            "total_transactions": len(transactions),
            "total_materials_affected": len({t.material_id for t in transactions}),
            "net_stock_change": as_float(net),
        },
        "by_transaction_type": trends["by_type"],
        "by_reason": trends["by_reason"],
        "daily_movement": [
            dict(day, net_change=round(day["total_increase"] - day["total_decrease"], 3))
            for day in trends["daily_trends"]
        ],
        "recent_transactions": [
            {
                "date": t.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                "material_name": t.material.name if t.material else None,
                "type": t.transaction_type,
                "reason": t.reason,
                "quantity_change": as_float(t.quantity_change),
                "quantity_after": as_float(t.quantity_after),
                "notes": t.notes,
            }
            for t in transactions[:20]
        ],
        "generated_at": utcnow().isoformat(),
    }


def production_capacity_summary(db: Session, tenant_id: str) -> Dict[str, int]:
    bom_service = BOMService(settings=get_settings())
    products = _bom_products(db, tenant_id)
    ready = limited = zero = 0
    for product in products:
        try:
            capacity = bom_service.available_quantity(db, tenant_id, product.id)["available_quantity"]
        except AppException:
            continue
        if capacity > 50:
            ready += 1
        elif capacity > 0:
            limited += 1
        else:
            zero += 1
    return {
        "total_bom_products": len(products),
        "ready_count": ready,
        "limited_count": limited,
        "zero_capacity_count": zero,
    }


def executive_dashboard(db: Session, tenant_id: str) -> Dict[str, Any]:
    stock = analytics_service.stock_status_summary(db, tenant_id)
    costs = analytics_service.cost_analysis(db, tenant_id)
    alerts = alert_service.get_active_alerts(db, tenant_id)
    capacity = production_capacity_summary(db, tenant_id)
    return {
        "report_type": "Executive Dashboard",
        "tenant_id": tenant_id,
        "generated_at": utcnow().isoformat(),
        "key_metrics": {
            "total_materials": stock["total_materials"],
            "total_inventory_value": stock["total_value"],
            "active_alerts": alerts["total_alerts"],
            "critical_alerts": alerts["severity_summary"]["critical"],
            "production_ready_products": capacity["ready_count"],
        },
        "stock_status": stock,
        "inventory_value_by_category": costs["cost_by_category"],
        "top_alerts": alerts["alerts"][:5],
        "production_capacity": capacity,
    }


def generate_report(db: Session, tenant_id: str, report: str, days: int = 30) -> Dict[str, Any]:
    if report not in REPORTS:
        raise ValidationAppException(f"Unknown report: {report}", details={"available": list(REPORTS)})
    if report == "recipe_costing":
        return recipe_costing_report(db, tenant_id)
    if report == "production_efficiency":
        return production_efficiency_report(db, tenant_id)
    if report == "material_usage":
        return material_usage_report(db, tenant_id, days)
    if report == "stock_movement":
        return stock_movement_report(db, tenant_id, days)
    return executive_dashboard(db, tenant_id)
