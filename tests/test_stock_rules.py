import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from decimal import Decimal

import pytest

from modules.alerts import service as alert_service
from modules.alerts.models import severity_for
from modules.analytics.service import attention_priority, categorize_turnover, turnover_rate
from modules.materials.models import Material, classify_stock
from modules.recipes.models import Recipe, RecipeMaterial
from modules.reports.service import efficiency_score


def build_material(stock, reorder_level=100):
    return Material(
        id="m1",
        tenant_id="t1",
        name="Oat Milk",
        unit="L",
        stock_quantity=Decimal(str(stock)),
        reorder_level=Decimal(str(reorder_level)),
        unit_cost=Decimal("1.5"),
    )


@pytest.mark.parametrize(
    "stock,expected",
    [(0, "out_of_stock"), (-1, "out_of_stock"), (50, "critical"), (51, "low"), (99, "low"), (100, "normal"), (300, "excess")],
)
def test_classify_stock(stock, expected):
    assert classify_stock(stock, 100, 0.5, 3.0) == expected


def test_classify_stock_without_reorder_level():
    assert classify_stock(5, 0, 0.5, 3.0) == "normal"


def test_alert_severity():
    assert severity_for(0, 100, 0.5) == "out_of_stock"
    assert severity_for(50, 100, 0.5) == "critical"
    assert severity_for(80, 100, 0.5) == "low"
    assert severity_for(100, 100, 0.5) is None


def test_computed_alerts_for_material_in_active_recipe():
    material = build_material(0)
    recipe = Recipe(id="r1", tenant_id="t1", name="Latte", is_active=True)
    recipe.components.append(RecipeMaterial(material=material, quantity_required=Decimal("0.2"), unit="L"))

    alerts = alert_service.material_alerts(material)

    assert [a["type"] for a in alerts] == ["out_of_stock", "active_recipe_low_stock", "active_recipe_out_of_stock"]
    assert alert_service.highest_severity(alerts) == "critical"


def test_computed_alerts_for_low_unused_material():
    alerts = alert_service.material_alerts(build_material(40))

    assert [a["type"] for a in alerts] == ["below_reorder_level"]
    assert alert_service.highest_severity(alerts) == "warning"
    assert alert_service.material_alerts(build_material(150)) == []


def test_reorder_priority():
    assert alert_service.reorder_priority(0, 100) == "urgent"
    assert alert_service.reorder_priority(49, 100) == "high"
    assert alert_service.reorder_priority(50, 100) == "medium"


def test_efficiency_score():
    assert efficiency_score(100, 0) == 100.0
    assert efficiency_score(250, 10) == 97.0
    assert efficiency_score(50, 5) == 63.5
    assert efficiency_score(0, 100) == 0.0


def test_turnover():
    rate = turnover_rate(75, 50)
    assert rate == Decimal("0.5")
    assert categorize_turnover(float(rate)) == "Low"
    assert categorize_turnover(0.51) == "Moderate"
    assert categorize_turnover(2.5) == "Very High"
    assert turnover_rate(0, 0) == Decimal("0")


def test_attention_priority_stacks_reasons():
    priority, reasons, daily = attention_priority(build_material(40), Decimal("300"), 4, 30)

    # low stock (3) + four days left (4)
    assert priority == 7
    assert len(reasons) == 2
    assert daily == Decimal("10")


def test_attention_priority_out_of_stock_and_idle():
    priority, reasons, _ = attention_priority(build_material(0), Decimal("0"), 0, 30)
    assert priority == 5
    assert reasons == ["Out of stock"]

    priority, reasons, _ = attention_priority(build_material(500), Decimal("0"), 0, 30)
    assert priority == 1
    assert "possibly obsolete" in reasons[0]
