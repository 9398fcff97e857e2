import logging
from collections import OrderedDict
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.errors import AppException, BusinessRuleException, NotFoundException, ValidationAppException
from core.models import utcnow
from core.settings import Settings, as_float, to_decimal
from modules.products import service as product_service
from modules.products.models import Product
from modules.products.types import InventoryManagementType
from modules.recipes import service as recipe_service
from modules.recipes.models import Recipe

logger = logging.getLogger(__name__)


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def capacity_status(available_quantity: int) -> str:
    if available_quantity <= 0:
        return "out_of_stock"
    if available_quantity < 10:
        return "low_stock"
    if available_quantity < 50:
        return "moderate_stock"
    return "in_stock"


class BOMService:
    """Bill of materials explosion, batch planning and batch sizing."""

    def __init__(self, settings: Settings):
        self.settings = settings

    # Pure calculations on loaded recipes

    def explode(self, recipe: Recipe) -> Dict[str, Any]:
        """Return the producible quantity of ``recipe`` and its bottleneck component.

        Units per component are ``floor(stock / effective_need)``; the first
        component reaching the minimum is the bottleneck.
        """
        components = recipe_service.usable_components(recipe)

        details: List[Dict[str, Any]] = []
        available: Optional[int] = None
        bottleneck: Optional[Dict[str, Any]] = None
        for component in components:
            material = component.material
            effective_need = component.effective_need
            if effective_need <= 0:
                raise ValidationAppException(
                    f"Component '{material.name}' of recipe '{recipe.name}' has no effective need",
                    details={"recipe_id": recipe.id, "material_id": material.id},
                )
            stock = to_decimal(material.stock_quantity)
            units = max(_floor(stock / effective_need), 0)
            entry = {
                "material_id": material.id,
                "material_name": material.name,
                "unit": material.unit,
                "quantity_required": as_float(component.quantity_required),
                "waste_percentage": as_float(component.waste_percentage, 2),
                "effective_quantity": as_float(effective_need, 4),
                "stock_quantity": as_float(stock),
                "max_producible": units,
                "sufficient": units > 0,
            }
            details.append(entry)
            if available is None or units < available:
                available = units
                bottleneck = entry

        return {
            "available_quantity": available,
            "can_produce": available > 0,
            "bottleneck_material": {
                "material_id": bottleneck["material_id"],
                "material_name": bottleneck["material_name"],
                "stock_quantity": bottleneck["stock_quantity"],
                "effective_quantity": bottleneck["effective_quantity"],
                "max_producible": bottleneck["max_producible"],
            },
            "component_details": details,
        }

    def requirements(self, recipe: Recipe, quantity: int) -> Dict[str, Any]:
        qty = to_decimal(quantity)
        total_cost = Decimal("0")
        rows: List[Dict[str, Any]] = []
        shortages: List[Dict[str, Any]] = []
        for component in recipe_service.usable_components(recipe):
            material = component.material
            required = component.effective_need * qty
            stock = to_decimal(material.stock_quantity)
            shortage = required - stock if required > stock else Decimal("0")
            cost = required * to_decimal(material.unit_cost)
            total_cost += cost
            if shortage > 0:
                shortages.append(
                    {
                        "material_id": material.id,
                        "material_name": material.name,
                        "shortage": as_float(shortage),
                        "unit": material.unit,
                    }
                )
            rows.append(
                {
                    "material_id": material.id,
                    "material_name": material.name,
                    "sku": material.sku,
                    "unit": material.unit,
                    "quantity_per_unit": as_float(component.quantity_required),
                    "waste_percentage": as_float(component.waste_percentage, 2),
                    "effective_quantity_per_unit": as_float(component.effective_need, 4),
                    "total_required": as_float(required),
                    "current_stock": as_float(stock),
                    "remaining_after_production": as_float(stock - required),
                    "is_sufficient": stock >= required,
                    "shortage": as_float(shortage),
                    "unit_cost": as_float(material.unit_cost, 4),
                    "total_cost": as_float(cost, 2),
                }
            )
        return {
            "can_produce": not shortages,
            "material_requirements": rows,
            "shortages": shortages,
            "total_cost": total_cost,
        }

    def plan(self, entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Pool the material needs of several resolved products against current stock.

        ``entries`` items carry ``product``, ``recipe`` and ``quantity``, or
        ``product_id`` and ``error`` when the product could not be resolved.
        """
        aggregated: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        product_details: List[Dict[str, Any]] = []
        total_cost = Decimal("0")
        all_resolved = True

        for entry in entries:
            if entry.get("error"):
                all_resolved = False
                product_details.append(
                    {"product_id": entry["product_id"], "quantity": entry.get("quantity"), "error": entry["error"]}
                )
                continue

            product, recipe, quantity = entry["product"], entry["recipe"], entry["quantity"]
            qty = to_decimal(quantity)
            product_cost = Decimal("0")
            for component in recipe.components:
                material = component.material
                required = component.effective_need * qty
                product_cost += required * to_decimal(material.unit_cost)
                bucket = aggregated.get(material.id)
                if bucket is None:
                    bucket = aggregated[material.id] = {
                        "material": material,
                        "total_required": Decimal("0"),
                        "used_in_products": [],
                    }
                bucket["total_required"] += required
                bucket["used_in_products"].append(
                    {
                        "product_id": product.id,
                        "product_name": product.name,
                        "quantity": quantity,
                        "material_required": as_float(required),
                    }
                )
            total_cost += product_cost
            product_details.append(
                {
                    "product_id": product.id,
                    "product_name": product.name,
                    "recipe_id": recipe.id,
                    "quantity": quantity,
                    "total_cost": as_float(product_cost, 2),
                }
            )

        requirements: List[Dict[str, Any]] = []
        shortages: List[Dict[str, Any]] = []
        for material_id, bucket in aggregated.items():
            material = bucket["material"]
            stock = to_decimal(material.stock_quantity)
            required = bucket["total_required"]
            sufficient = required <= stock
            if not sufficient:
                shortages.append(
                    {
                        "material_id": material_id,
                        "material_name": material.name,
                        "current_stock": as_float(stock),
                        "total_required": as_float(required),
                        "shortage": as_float(required - stock),
                        "unit": material.unit,
                    }
                )
            requirements.append(
                {
                    "material_id": material_id,
                    "material_name": material.name,
                    "unit": material.unit,
                    "current_stock": as_float(stock),
                    "total_required": as_float(required),
                    "remaining_after_production": as_float(stock - required),
                    "is_sufficient": sufficient,
                    "unit_cost": as_float(material.unit_cost, 4),
                    "used_in_products": bucket["used_in_products"],
                }
            )

        return {
            "production_plan": product_details,
            "total_products": len(entries),
            "is_feasible": all_resolved and not shortages,
            "aggregated_material_requirements": requirements,
            "material_shortages": shortages,
            "total_production_cost": as_float(total_cost, 2),
            "calculated_at": utcnow().isoformat(),
        }

    def batch_options(self, recipe: Recipe, max_producible: int, min_batch=None, max_batch=None, target=None):
        lower = min_batch or 1
        upper = min(max_batch, max_producible) if max_batch is not None else max_producible
        sizes = set(self.settings.batch_size_candidates)
        if target:
            sizes.add(target)

        options: List[Dict[str, Any]] = []
        for size in sorted(sizes):
            if size < lower or size > upper:
                continue
            cost = self.requirements(recipe, size)["total_cost"]
            options.append(
                {
                    "batch_size": size,
                    "total_cost": as_float(cost, 2),
                    "cost_per_unit": as_float(cost / size, 2),
                    "utilization_percentage": as_float(Decimal(size) / Decimal(max_producible) * 100, 2),
                }
            )

        if upper < lower:
            recommended = None
        elif target:
            recommended = min(max(target, lower), upper)
        else:
            recommended = upper
        return options, recommended

    @staticmethod
    def batch_recommendation(max_producible: int, options: List[Dict[str, Any]], recommended: Optional[int]) -> str:
        if max_producible == 0:
            return "Cannot produce. Material shortages detected."
        if recommended is None:
            return "Available materials do not cover the minimum batch size. Restock before production."
        if max_producible < 10:
            return "Very limited production capacity. Restock materials before production."
        if options:
            cheapest = min(options, key=lambda o: o["cost_per_unit"])
            return (
                f"Recommended batch size: {recommended} units. "
                f"Lowest cost per unit at {cheapest['batch_size']} units."
            )
        return f"Maximum capacity: {max_producible} units. Plan batch size accordingly."

    # Database backed operations

    def resolve(self, db: Session, tenant_id: str, product_id: str):
        product = product_service.get_product(db, tenant_id, product_id)
        if product.inventory_management_type != InventoryManagementType.BOM.value:
            raise BusinessRuleException(
                f"Product '{product.name}' does not use BOM inventory management "
                f"(current type: {product.inventory_management_type})",
                rule="product_not_bom",
            )
        recipe = recipe_service.get_active_recipe(db, tenant_id, product.id)
        if recipe is None:
            raise NotFoundException(f"No active recipe found for product '{product.name}'")
        return product, recipe

    @staticmethod
    def _header(product: Product, recipe: Recipe) -> Dict[str, Any]:
        return {
            "product_id": product.id,
            "product_name": product.name,
            "recipe_id": recipe.id,
            "recipe_name": recipe.name,
            "yield_quantity": as_float(recipe.yield_quantity),
            "yield_unit": recipe.yield_unit,
        }

    def available_quantity(self, db: Session, tenant_id: str, product_id: str) -> Dict[str, Any]:
        product, recipe = self.resolve(db, tenant_id, product_id)
        result = self._header(product, recipe)
        result.update(self.explode(recipe))
        return result

    def bulk_availability(self, db: Session, tenant_id: str, product_ids: List[str]) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for product_id in product_ids:
            try:
                results[product_id] = self.available_quantity(db, tenant_id, product_id)
            except AppException as exc:
                logger.info("Skipped product %s in bulk availability: %s", product_id, exc.message)
                errors[product_id] = exc.message
        return {"results": results, "errors": errors}

    def production_capacity(self, db: Session, tenant_id: str, product_id: str) -> Dict[str, Any]:
        availability = self.available_quantity(db, tenant_id, product_id)
        bottleneck_id = availability["bottleneck_material"]["material_id"]
        components = []
        for detail in availability["component_details"]:
            entry = dict(detail)
            entry["status"] = "sufficient" if detail["sufficient"] else "insufficient"
            entry["is_limiting"] = detail["material_id"] == bottleneck_id
            components.append(entry)
        availability["component_details"] = components
        availability["capacity_status"] = capacity_status(availability["available_quantity"])
        return availability

    def feasibility(self, db: Session, tenant_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        availability = self.available_quantity(db, tenant_id, product_id)
        available = availability["available_quantity"]
        feasible = available >= quantity
        return {
            "product_id": availability["product_id"],
            "product_name": availability["product_name"],
            "recipe_id": availability["recipe_id"],
            "requested_quantity": quantity,
            "available_quantity": available,
            "is_feasible": feasible,
            "shortage": 0 if feasible else quantity - available,
            "bottleneck_material": availability["bottleneck_material"],
        }

    def batch_requirements(self, db: Session, tenant_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        product, recipe = self.resolve(db, tenant_id, product_id)
        requirements = self.requirements(recipe, quantity)
        total_cost = requirements.pop("total_cost")
        result = self._header(product, recipe)
        result.update(requirements)
        result["requested_quantity"] = quantity
        result["cost_analysis"] = {
            "total_material_cost": as_float(total_cost, 2),
            "cost_per_unit": as_float(total_cost / quantity, 2),
        }
        result["calculated_at"] = utcnow().isoformat()
        return result

    def simulate_production(self, db: Session, tenant_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        """Describe the stock changes a production run would cause, without writing them."""
        batch = self.batch_requirements(db, tenant_id, product_id, quantity)
        if not batch["can_produce"]:
            return {
                "success": False,
                "message": "Cannot simulate production due to material shortages",
                "shortages": batch["shortages"],
            }
        changes = [
            {
                "material_id": req["material_id"],
                "material_name": req["material_name"],
                "before_production": req["current_stock"],
                "consumed": req["total_required"],
                "after_production": req["remaining_after_production"],
                "unit": req["unit"],
            }
            for req in batch["material_requirements"]
        ]
        return {
            "success": True,
            "product_id": batch["product_id"],
            "product_name": batch["product_name"],
            "quantity_produced": quantity,
            "material_changes": changes,
            "production_cost": batch["cost_analysis"]["total_material_cost"],
            "cost_per_unit": batch["cost_analysis"]["cost_per_unit"],
        }

    def optimal_batch_size(
        self,
        db: Session,
        tenant_id: str,
        product_id: str,
        min_batch: Optional[int] = None,
        max_batch: Optional[int] = None,
        target: Optional[int] = None,
    ) -> Dict[str, Any]:
        if min_batch is not None and max_batch is not None and min_batch > max_batch:
            raise ValidationAppException("min_batch_size cannot exceed max_batch_size")
        product, recipe = self.resolve(db, tenant_id, product_id)
        explosion = self.explode(recipe)
        max_producible = explosion["available_quantity"]
        if max_producible > 0:
            options, recommended = self.batch_options(recipe, max_producible, min_batch, max_batch, target)
        else:
            options, recommended = [], None
        return {
            "product_id": product.id,
            "product_name": product.name,
            "recipe_id": recipe.id,
            "maximum_producible": max_producible,
            "bottleneck_material": explosion["bottleneck_material"],
            "constraints": {"min_batch_size": min_batch, "max_batch_size": max_batch, "target_quantity": target},
            "suggested_batches": options,
            "recommended_batch_size": recommended,
            "recommendation": self.batch_recommendation(max_producible, options, recommended),
        }

    def multi_product_plan(self, db: Session, tenant_id: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        entries: List[Dict[str, Any]] = []
        for item in items:
            try:
                product, recipe = self.resolve(db, tenant_id, item["product_id"])
                self.explode(recipe)
            except AppException as exc:
                logger.info("Product %s excluded from batch plan: %s", item["product_id"], exc.message)
                entries.append({"product_id": item["product_id"], "quantity": item["quantity"], "error": exc.message})
                continue
            entries.append({"product": product, "recipe": recipe, "quantity": item["quantity"]})
        result = self.plan(entries)
        logger.info(
            "Batch plan for tenant %s: %d product(s), feasible=%s", tenant_id, len(entries), result["is_feasible"]
        )
        return result
