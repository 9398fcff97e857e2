import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from decimal import Decimal

import pytest

from core.errors import BusinessRuleException, ValidationAppException
from core.models import utcnow
from core.settings import Settings
from modules.bom.service import BOMService, capacity_status
from modules.materials.models import Material
from modules.products.models import Product
from modules.recipes.models import Recipe, RecipeMaterial


def build_material(material_id, name, stock, unit_cost=0, reorder_level=0, unit="ml"):
    return Material(
        id=material_id,
        tenant_id="t1",
        name=name,
        unit=unit,
        stock_quantity=Decimal(str(stock)),
        reorder_level=Decimal(str(reorder_level)),
        unit_cost=Decimal(str(unit_cost)),
    )


def build_recipe(recipe_id, components, yield_quantity=1):
    recipe = Recipe(id=recipe_id, tenant_id="t1", name=f"Recipe {recipe_id}", yield_quantity=Decimal(str(yield_quantity)))
    for material, quantity, waste in components:
        recipe.components.append(
            RecipeMaterial(
                material=material,
                material_id=material.id,
                unit=material.unit,
                quantity_required=Decimal(str(quantity)),
                waste_percentage=Decimal(str(waste)),
            )
        )
    return recipe


def test_available_quantity_applies_waste_and_floors():
    bom_service = BOMService(settings=Settings())
    milk = build_material("m1", "Milk", 2000)
    recipe = build_recipe("r1", [(milk, 150, 5)])

    result = bom_service.explode(recipe)

    assert result["component_details"][0]["effective_quantity"] == pytest.approx(157.5)
    assert result["available_quantity"] == 12
    assert result["can_produce"] is True
    assert result["bottleneck_material"]["material_id"] == "m1"


def test_bottleneck_is_first_component_reaching_minimum():
    bom_service = BOMService(settings=Settings())
    coffee = build_material("m1", "Coffee", 100, unit="g")
    milk = build_material("m2", "Milk", 1000)
    cups = build_material("m3", "Cups", 10, unit="pcs")
    recipe = build_recipe("r1", [(coffee, 18, 0), (milk, 200, 0), (cups, 2, 0)])

    result = bom_service.explode(recipe)

    # coffee 5, milk 5, cups 5: ties resolve to the first component
    assert result["available_quantity"] == 5
    assert result["bottleneck_material"]["material_name"] == "Coffee"
    assert [d["max_producible"] for d in result["component_details"]] == [5, 5, 5]


def test_out_of_stock_component_gives_zero():
    bom_service = BOMService(settings=Settings())
    sugar = build_material("m1", "Sugar", 0, unit="g")
    water = build_material("m2", "Water", 5000)
    recipe = build_recipe("r1", [(water, 250, 0), (sugar, 10, 0)])

    result = bom_service.explode(recipe)

    assert result["available_quantity"] == 0
    assert result["can_produce"] is False
    assert result["bottleneck_material"]["material_name"] == "Sugar"
    assert result["component_details"][1]["sufficient"] is False


def test_recipe_without_components_is_rejected():
    bom_service = BOMService(settings=Settings())
    with pytest.raises(ValidationAppException):
        bom_service.explode(build_recipe("r1", []))


def test_component_without_effective_need_is_rejected():
    bom_service = BOMService(settings=Settings())
    milk = build_material("m1", "Milk", 2000)
    with pytest.raises(ValidationAppException):
        bom_service.explode(build_recipe("r1", [(milk, 0, 10)]))


def test_deleted_material_blocks_explosion_and_requirements():
    bom_service = BOMService(settings=Settings())
    milk = build_material("m1", "Milk", 2000)
    beans = build_material("m2", "Beans", 100, unit="g")
    beans.deleted_at = utcnow()
    recipe = build_recipe("r1", [(milk, 200, 0), (beans, 18, 0)])

    with pytest.raises(BusinessRuleException) as exc_info:
        bom_service.explode(recipe)
    assert exc_info.value.details == {"rule": "recipe_material_deleted"}
    assert "Beans" in exc_info.value.message
    with pytest.raises(BusinessRuleException):
        bom_service.requirements(recipe, 1)


def test_requirements_report_shortage_and_cost():
    bom_service = BOMService(settings=Settings())
    flour = build_material("m1", "Flour", 1.5, unit_cost=2, unit="kg")
    recipe = build_recipe("r1", [(flour, 0.2, 10)])

    result = bom_service.requirements(recipe, 10)

    row = result["material_requirements"][0]
    assert row["total_required"] == pytest.approx(2.2)
    assert row["shortage"] == pytest.approx(0.7)
    assert row["remaining_after_production"] == pytest.approx(-0.7)
    assert result["can_produce"] is False
    assert result["total_cost"] == Decimal("4.400")


def test_plan_pools_shared_materials():
    bom_service = BOMService(settings=Settings())
    flour = build_material("m1", "Flour", 11, unit_cost=1, unit="kg")
    eggs = build_material("m2", "Eggs", 100, unit_cost=0.25, unit="pcs")
    bread = build_recipe("r1", [(flour, 1, 0)])
    cake = build_recipe("r2", [(flour, 0.5, 0), (eggs, 3, 0)])
    entries = [
        {"product": Product(id="p1", name="Bread"), "recipe": bread, "quantity": 10},
        {"product": Product(id="p2", name="Cake"), "recipe": cake, "quantity": 4},
    ]

    result = bom_service.plan(entries)

    flour_row = next(r for r in result["aggregated_material_requirements"] if r["material_id"] == "m1")
    assert flour_row["total_required"] == pytest.approx(12.0)
    assert flour_row["is_sufficient"] is False
    assert len(flour_row["used_in_products"]) == 2
    assert result["is_feasible"] is False
    assert result["material_shortages"] == [
        {
            "material_id": "m1",
            "material_name": "Flour",
            "current_stock": 11.0,
            "total_required": 12.0,
            "shortage": 1.0,
            "unit": "kg",
        }
    ]
    assert result["total_production_cost"] == pytest.approx(15.0)


def test_plan_is_feasible_when_stock_covers_everything():
    bom_service = BOMService(settings=Settings())
    flour = build_material("m1", "Flour", 12, unit="kg")
    bread = build_recipe("r1", [(flour, 1, 0)])
    cake = build_recipe("r2", [(flour, 0.5, 0)])
    entries = [
        {"product": Product(id="p1", name="Bread"), "recipe": bread, "quantity": 10},
        {"product": Product(id="p2", name="Cake"), "recipe": cake, "quantity": 4},
    ]

    result = bom_service.plan(entries)

    assert result["is_feasible"] is True
    assert result["aggregated_material_requirements"][0]["remaining_after_production"] == pytest.approx(0.0)


def test_unresolved_product_makes_plan_infeasible():
    bom_service = BOMService(settings=Settings())
    flour = build_material("m1", "Flour", 100, unit="kg")
    entries = [
        {"product": Product(id="p1", name="Bread"), "recipe": build_recipe("r1", [(flour, 1, 0)]), "quantity": 1},
        {"product_id": "missing", "quantity": 3, "error": "Product not found"},
    ]

    result = bom_service.plan(entries)

    assert result["is_feasible"] is False
    assert result["material_shortages"] == []
    assert result["production_plan"][1] == {"product_id": "missing", "quantity": 3, "error": "Product not found"}


def test_batch_options_respect_bounds_and_target():
    bom_service = BOMService(settings=Settings())
    milk = build_material("m1", "Milk", 1200, unit_cost=0.01)
    recipe = build_recipe("r1", [(milk, 10, 0)])

    options, recommended = bom_service.batch_options(recipe, 120)
    assert [o["batch_size"] for o in options] == [10, 25, 50, 100]
    assert recommended == 120
    assert options[-1]["utilization_percentage"] == pytest.approx(83.33)

    options, recommended = bom_service.batch_options(recipe, 120, min_batch=20, max_batch=60, target=40)
    assert [o["batch_size"] for o in options] == [25, 40, 50]
    assert recommended == 40

    _, recommended = bom_service.batch_options(recipe, 120, min_batch=20, max_batch=60, target=500)
    assert recommended == 60

    options, recommended = bom_service.batch_options(recipe, 120, min_batch=200)
    assert options == []
    assert recommended is None


def test_capacity_status_boundaries():
    assert capacity_status(0) == "out_of_stock"
    assert capacity_status(9) == "low_stock"
    assert capacity_status(10) == "moderate_stock"
    assert capacity_status(49) == "moderate_stock"
    assert capacity_status(50) == "in_stock"


def test_recipe_cost_per_unit_uses_yield():
    coffee = build_material("m1", "Coffee", 1000, unit_cost=0.05, unit="g")
    milk = build_material("m2", "Milk", 1000, unit_cost=0.002)
    recipe = build_recipe("r1", [(coffee, 18, 0), (milk, 200, 10)], yield_quantity=2)

    # 18 * 0.05 + 220 * 0.002
    assert recipe.total_cost() == Decimal("1.34")
    assert recipe.cost_per_unit() == Decimal("0.67")
    assert recipe.components[1].waste_amount == Decimal("20")
