import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from fastapi.testclient import TestClient

from main import app

client = TestClient(app)


@pytest.fixture(autouse=True)
def clean_db():
    from core.database import Base, engine
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def tenant_id():
    resp = client.post("/api/v1/tenants", json={"name": "Bakery"})
    assert resp.status_code == 200
    return resp.json()["id"]


def url(tenant_id: str, path: str) -> str:
    return f"/api/v1/tenants/{tenant_id}{path}"


def make_material(tenant_id, name="Flour", stock=100, reorder=50, unit_cost=2, category=None):
    resp = client.post(
        url(tenant_id, "/materials"),
        json={
            "name": name,
            "unit": "kg",
            "stock_quantity": stock,
            "reorder_level": reorder,
            "unit_cost": unit_cost,
            "category": category,
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def deduct(tenant_id, material_id, quantity):
    resp = client.post(
        url(tenant_id, f"/materials/{material_id}/adjust-stock"),
        json={"type": "deduction", "quantity": quantity, "reason": "waste"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_crossing_reorder_level_raises_single_alert(tenant_id):
    flour = make_material(tenant_id)

    deduct(tenant_id, flour["id"], 60)
    alerts = client.get(url(tenant_id, "/stock-alerts")).json()
    assert len(alerts) == 1
    assert alerts[0]["status"] == "pending"
    assert alerts[0]["severity"] == "low"
    assert alerts[0]["material_name"] == "Flour"
    assert "notified" not in alerts[0]

    # Falling further refreshes the open alert
    deduct(tenant_id, flour["id"], 20)
    alerts = client.get(url(tenant_id, "/stock-alerts")).json()
    assert len(alerts) == 1
    assert alerts[0]["severity"] == "critical"
    assert alerts[0]["current_stock"] == 20


def test_no_alert_while_staying_above_reorder_level(tenant_id):
    flour = make_material(tenant_id, stock=200)
    deduct(tenant_id, flour["id"], 100)
    assert client.get(url(tenant_id, "/stock-alerts")).json() == []


def test_alert_lifecycle(tenant_id):
    flour = make_material(tenant_id)
    deduct(tenant_id, flour["id"], 80)
    alert_id = client.get(url(tenant_id, "/stock-alerts")).json()[0]["id"]

    resp = client.post(
        url(tenant_id, f"/stock-alerts/{alert_id}/acknowledge"),
        json={"notes": "supplier called"},
        headers={"X-User-ID": "manager-1"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "acknowledged"
    assert body["acknowledged_by"] == "manager-1"
    assert body["acknowledged_notes"] == "supplier called"
    assert body["acknowledged_at"] is not None

    resp = client.post(url(tenant_id, f"/stock-alerts/{alert_id}/acknowledge"))
    assert resp.status_code == 422
    assert resp.json()["details"]["rule"] == "invalid_alert_transition"

    resp = client.post(url(tenant_id, f"/stock-alerts/{alert_id}/resolve"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "resolved"

    assert client.post(url(tenant_id, f"/stock-alerts/{alert_id}/dismiss")).status_code == 422

    # A freshly closed alert is not raised again by the scan
    check = client.post(url(tenant_id, "/stock-alerts/check")).json()
    assert check == {"checked": 1, "created": 0, "updated": 0}

    stats = client.get(url(tenant_id, "/stock-alerts/stats")).json()
    assert stats["total"] == 1
    assert stats["actionable"] == 0
    assert stats["by_status"]["resolved"] == 1


def test_check_creates_alert_for_low_material(tenant_id):
    make_material(tenant_id, name="Sugar", stock=10, reorder=50)
    make_material(tenant_id, name="Salt", stock=80, reorder=50)

    check = client.post(url(tenant_id, "/stock-alerts/check")).json()
    assert check["checked"] == 2
    assert check["created"] == 1

    pending = client.get(url(tenant_id, "/stock-alerts"), params={"status": "pending"}).json()
    assert [a["material_name"] for a in pending] == ["Sugar"]
    assert pending[0]["severity"] == "critical"

    check = client.post(url(tenant_id, "/stock-alerts/check")).json()
    assert check["created"] == 0
    assert check["updated"] == 1


def test_alerts_are_tenant_scoped(tenant_id):
    flour = make_material(tenant_id)
    deduct(tenant_id, flour["id"], 80)
    alert_id = client.get(url(tenant_id, "/stock-alerts")).json()[0]["id"]

    other = client.post("/api/v1/tenants", json={"name": "Other"}).json()["id"]
    assert client.get(url(other, f"/stock-alerts/{alert_id}")).status_code == 404
    assert client.get(url(other, "/stock-alerts")).json() == []


def test_computed_active_alerts_and_reorder_recommendations(tenant_id):
    make_material(tenant_id, name="Yeast", stock=0, reorder=5)
    make_material(tenant_id, name="Butter", stock=10, reorder=40)
    make_material(tenant_id, name="Salt", stock=80, reorder=50)

    active = client.get(url(tenant_id, "/bom/alerts/active")).json()
    assert active["total_alerts"] == 2
    assert active["alerts"][0]["material_name"] == "Yeast"
    assert active["alerts"][0]["highest_severity"] == "critical"
    assert active["severity_summary"] == {"critical": 1, "warning": 1, "info": 0}

    reorder = client.get(url(tenant_id, "/bom/alerts/reorder-recommendations")).json()
    priorities = {r["material_name"]: r["priority"] for r in reorder["recommendations"]}
    assert priorities == {"Yeast": "urgent", "Butter": "high"}
    butter = next(r for r in reorder["recommendations"] if r["material_name"] == "Butter")
    assert butter["recommended_order_quantity"] == 30
    assert butter["estimated_order_cost"] == 60


def test_predictive_alert_from_recent_usage(tenant_id):
    flour = make_material(tenant_id, stock=400, reorder=0)
    deduct(tenant_id, flour["id"], 390)

    body = client.get(url(tenant_id, "/bom/alerts/predictive"), params={"forecast_days": 7}).json()
    assert body["total_alerts"] == 1
    alert = body["predictive_alerts"][0]
    assert alert["average_daily_usage"] == 13
    assert alert["severity"] == "critical"


def test_stock_status_summary(tenant_id):
    make_material(tenant_id, name="A", stock=0, reorder=10)
    make_material(tenant_id, name="B", stock=4, reorder=10)
    make_material(tenant_id, name="C", stock=8, reorder=10)
    make_material(tenant_id, name="D", stock=20, reorder=10)
    make_material(tenant_id, name="E", stock=30, reorder=10)

    body = client.get(url(tenant_id, "/bom/analytics/stock-status")).json()
    assert body["total_materials"] == 5
    assert (body["out_of_stock"], body["critical_stock"], body["low_stock"]) == (1, 1, 1)
    assert (body["normal_stock"], body["excess_stock"]) == (1, 1)
    assert body["total_value"] == 124


def test_usage_trends_group_ledger_rows(tenant_id):
    flour = make_material(tenant_id, stock=100, reorder=0)
    deduct(tenant_id, flour["id"], 30)
    client.post(
        url(tenant_id, f"/materials/{flour['id']}/adjust-stock"),
        json={"type": "restock", "quantity": 50, "reason": "purchase"},
    )

    body = client.get(url(tenant_id, "/bom/analytics/usage-trends"), params={"days": 7}).json()
    assert body["total_transactions"] == 2
    by_type = {row["type"]: row["total_quantity_change"] for row in body["by_type"]}
    assert by_type == {"deduction": -30, "restock": 50}
    assert body["daily_trends"][0]["total_increase"] == 50
    assert body["daily_trends"][0]["total_decrease"] == 30


def test_report_export_returns_workbook(tenant_id):
    flour = make_material(tenant_id, category="Dry goods")
    deduct(tenant_id, flour["id"], 10)

    resp = client.get(url(tenant_id, "/bom/reports/export"), params={"report": "material_usage", "days": 7})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "material_usage_" in resp.headers["content-disposition"]
    assert resp.content[:2] == b"PK"

    assert client.get(url(tenant_id, "/bom/reports/export"), params={"report": "unknown"}).status_code == 422


def test_material_usage_report(tenant_id):
    flour = make_material(tenant_id, stock=100, reorder=0)
    deduct(tenant_id, flour["id"], 30)
    deduct(tenant_id, flour["id"], 10)

    body = client.get(url(tenant_id, "/bom/reports/material-usage"), params={"days": 10}).json()
    row = body["material_details"][0]
    assert row["opening_stock"] == 100
    assert row["closing_stock"] == 60
    assert row["total_consumed"] == 40
    assert row["average_daily_usage"] == 4
    assert body["summary"]["total_transactions"] == 2


@pytest.fixture
def pantry(tenant_id):
    milk = make_material(tenant_id, name="Milk", stock=2000, reorder=0, unit_cost=0.01, category="Dairy")
    beans = make_material(tenant_id, name="Beans", stock=100, reorder=0, unit_cost=0.05, category="Coffee")
    cups = make_material(tenant_id, name="Cups", stock=10, reorder=50, unit_cost=0.1)
    return {"milk": milk, "beans": beans, "cups": cups}


def test_materials_by_category(tenant_id, pantry):
    body = client.get(url(tenant_id, "/bom/analytics/categories")).json()
    assert body["total_categories"] == 3
    categories = {c["category"]: c for c in body["categories"]}
    assert set(categories) == {"Coffee", "Dairy", "Uncategorized"}
    assert categories["Uncategorized"]["low_stock_count"] == 1
    assert categories["Dairy"]["total_stock_value"] == 20


def test_cost_analysis_filters_categories(tenant_id, pantry):
    resp = client.get(url(tenant_id, "/bom/analytics/cost-analysis"), params={"category": ["Dairy", "Coffee"]})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["total_materials"] == 2
    assert body["total_stock_value"] == 25
    assert body["top_materials_by_value"][0]["name"] == "Milk"
    assert [c["category"] for c in body["cost_by_category"]] == ["Dairy", "Coffee"]


def test_turnover_rate_uses_recent_deductions(tenant_id, pantry):
    deduct(tenant_id, pantry["milk"]["id"], 500)

    body = client.get(url(tenant_id, "/bom/analytics/turnover-rate")).json()
    milk = next(row for row in body["turnover_data"] if row["name"] == "Milk")
    assert milk["total_usage"] == 500
    assert milk["turnover_rate"] == 0.29
    assert milk["turnover_category"] == "Low"
    assert body["turnover_data"][0]["name"] == "Milk"


def test_materials_requiring_attention(tenant_id, pantry):
    deduct(tenant_id, pantry["milk"]["id"], 500)

    body = client.get(url(tenant_id, "/bom/analytics/attention")).json()
    assert body["total_count"] == 2
    priorities = {e["name"]: e["priority"] for e in body["materials_requiring_attention"]}
    assert priorities == {"Cups": 4, "Beans": 1}
    assert body["materials_requiring_attention"][0]["name"] == "Cups"


def test_low_stock_report_and_exports(tenant_id, pantry):
    body = client.get(url(tenant_id, "/materials/low-stock/report")).json()
    assert body["summary"]["total_materials"] == 1
    cups = body["materials"][0]
    assert cups["name"] == "Cups"
    assert cups["shortfall"] == 40
    assert cups["reorder_cost"] == 4

    for path in ("/materials/export", "/materials/low-stock/export"):
        resp = client.get(url(tenant_id, path))
        assert resp.status_code == 200, path
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert resp.content[:2] == b"PK"

    resp = client.get(url(tenant_id, "/materials/export"), params={"category": "Dairy"})
    assert "materials_" in resp.headers["content-disposition"]
