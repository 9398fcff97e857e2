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


def url(tenant_id: str, path: str) -> str:
    return f"/api/v1/tenants/{tenant_id}{path}"


@pytest.fixture
def coffee_bar():
    """Latte made of 200 ml milk and 18 g beans; beans cover only 2 units."""
    tenant_id = client.post("/api/v1/tenants", json={"name": "Coffee Bar"}).json()["id"]
    milk = client.post(
        url(tenant_id, "/materials"),
        json={"name": "Milk", "unit": "ml", "stock_quantity": 1000, "unit_cost": 0.01},
    ).json()
    beans = client.post(
        url(tenant_id, "/materials"),
        json={"name": "Beans", "unit": "g", "stock_quantity": 50, "unit_cost": 0.01},
    ).json()
    product = client.post(url(tenant_id, "/products"), json={"name": "Latte", "inventory_management_type": "bom"}).json()
    resp = client.post(
        url(tenant_id, "/recipes"),
        json={
            "product_id": product["id"],
            "name": "Latte",
            "is_active": True,
            "components": [
                {"material_id": milk["id"], "quantity_required": 200, "unit": "ml"},
                {"material_id": beans["id"], "quantity_required": 18, "unit": "g"},
            ],
        },
    )
    assert resp.status_code == 200, resp.text
    return {"tenant_id": tenant_id, "product": product, "milk": milk, "beans": beans}


def test_production_capacity_marks_limiting_component(coffee_bar):
    tenant_id, product = coffee_bar["tenant_id"], coffee_bar["product"]

    resp = client.get(url(tenant_id, f"/bom/products/{product['id']}/production-capacity"))
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["available_quantity"] == 2
    assert body["capacity_status"] == "low_stock"
    limiting = {c["material_name"]: c["is_limiting"] for c in body["component_details"]}
    assert limiting == {"Milk": False, "Beans": True}
    assert all(c["status"] == "sufficient" for c in body["component_details"])


def test_feasibility_reports_missing_units(coffee_bar):
    tenant_id, product = coffee_bar["tenant_id"], coffee_bar["product"]
    path = url(tenant_id, f"/bom/products/{product['id']}/feasibility")

    body = client.get(path, params={"quantity": 5}).json()
    assert body["is_feasible"] is False
    assert body["available_quantity"] == 2
    assert body["shortage"] == 3
    assert body["bottleneck_material"]["material_name"] == "Beans"

    body = client.get(path, params={"quantity": 2}).json()
    assert body["is_feasible"] is True
    assert body["shortage"] == 0

    assert client.get(path, params={"quantity": 0}).status_code == 422


def test_batch_requirements_lists_shortages_and_cost(coffee_bar):
    tenant_id, product = coffee_bar["tenant_id"], coffee_bar["product"]

    resp = client.post(url(tenant_id, "/bom/batch-requirements"), json={"product_id": product["id"], "quantity": 3})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["can_produce"] is False
    rows = {r["material_name"]: r for r in body["material_requirements"]}
    assert rows["Milk"]["total_required"] == 600
    assert rows["Milk"]["remaining_after_production"] == 400
    assert rows["Beans"]["shortage"] == 4
    assert body["shortages"] == [{"material_id": coffee_bar["beans"]["id"], "material_name": "Beans", "shortage": 4, "unit": "g"}]
    assert body["cost_analysis"]["total_material_cost"] == pytest.approx(6.54)
    assert body["cost_analysis"]["cost_per_unit"] == pytest.approx(2.18)


def test_simulation_does_not_touch_stock(coffee_bar):
    tenant_id, product = coffee_bar["tenant_id"], coffee_bar["product"]
    milk, beans = coffee_bar["milk"], coffee_bar["beans"]

    resp = client.post(url(tenant_id, "/bom/simulate-production"), json={"product_id": product["id"], "quantity": 2})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    changes = {c["material_name"]: c for c in body["material_changes"]}
    assert (changes["Milk"]["consumed"], changes["Milk"]["after_production"]) == (400, 600)
    assert (changes["Beans"]["consumed"], changes["Beans"]["after_production"]) == (36, 14)

    assert client.get(url(tenant_id, f"/materials/{milk['id']}")).json()["stock_quantity"] == 1000
    assert client.get(url(tenant_id, f"/materials/{beans['id']}")).json()["stock_quantity"] == 50
    assert client.get(url(tenant_id, f"/materials/{milk['id']}/transactions")).json() == []

    body = client.post(
        url(tenant_id, "/bom/simulate-production"), json={"product_id": product["id"], "quantity": 3}
    ).json()
    assert body["success"] is False
    assert body["shortages"][0]["material_name"] == "Beans"


def test_empty_recipe_is_rejected_by_every_calculation():
    tenant_id = client.post("/api/v1/tenants", json={"name": "Tea Room"}).json()["id"]
    product = client.post(url(tenant_id, "/products"), json={"name": "Water", "inventory_management_type": "bom"}).json()
    client.post(url(tenant_id, "/recipes"), json={"product_id": product["id"], "name": "Empty", "is_active": True})
    payload = {"product_id": product["id"], "quantity": 1}

    for path in ("/bom/batch-requirements", "/bom/simulate-production"):
        resp = client.post(url(tenant_id, path), json=payload)
        assert resp.status_code == 422, path
        assert resp.json()["code"] == "validation_error"
    assert client.get(url(tenant_id, f"/bom/products/{product['id']}/feasibility"), params={"quantity": 1}).status_code == 422
