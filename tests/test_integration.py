import io
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from freshtick.config import settings
from freshtick.main import create_app
from freshtick.persistence.store import get_store

DAY = "2024-08-05"
ZONE = {
    "name": "Edappally",
    "code": "EDP",
    "boundary_coordinates": [[9.9, 76.2], [9.9, 76.4], [10.1, 76.4], [10.1, 76.2]],
    "pincodes": ["682024"],
}


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), (255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def fresh_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "storage_backend", "memory")
    monkeypatch.setattr(settings, "data_root", tmp_path)
    get_store.cache_clear()
    yield
    get_store.cache_clear()


@pytest.fixture
def api_client() -> TestClient:
    return TestClient(create_app())


def _subscribed_address(api_client: TestClient) -> dict:
    zone = api_client.post("/api/zones", json=ZONE).json()
    address = api_client.post(
        "/api/addresses", json={"user_id": "u1", "pincode": "682024", "latitude": 10.0, "longitude": 76.3}
    ).json()
    assert address["zone_id"] == zone["id"]
    offer = api_client.put(f"/api/zones/{zone['id']}/products", json={"product_id": "milk-1l"})
    assert offer.status_code == 200
    plan = api_client.post(
        "/api/plans",
        json={"name": "Daily 1L", "frequency_type": "daily", "items": [{"product_id": "milk-1l", "price": "60"}]},
    ).json()
    response = api_client.post(
        "/api/subscriptions",
        json={"user_id": "u1", "user_address_id": address["id"], "subscription_plan_id": plan["id"], "start_date": DAY},
    )
    assert response.status_code == 201
    return response.json()


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/api/health").json() == {"status": "ok"}
    assert api_client.get("/api/health/database").json()["backend"] == "memory"


def test_subscription_to_delivered_order(api_client: TestClient, tmp_path: Path) -> None:
    subscription = _subscribed_address(api_client)
    assert subscription["next_delivery_date"] == DAY

    preview = api_client.get("/api/schedule/preview", params={"on": DAY}).json()
    assert [row["subscription_id"] for row in preview] == [subscription["id"]]
    generated = api_client.post("/api/schedule/generate", params={"on": DAY}).json()
    assert generated["created"] == 1

    [delivery] = api_client.get("/api/deliveries", params={"on": DAY}).json()
    driver = api_client.post("/api/drivers", json={"name": "Anil"}).json()
    assert api_client.post(f"/api/deliveries/{delivery['id']}/assign", json={"driver_id": driver["id"]}).status_code == 200
    dispatched = api_client.post(f"/api/deliveries/{delivery['id']}/dispatch").json()
    assert dispatched["status"] == "out_for_delivery"
    assert api_client.get(f"/api/orders/{delivery['order_id']}").json()["status"] == "out_for_delivery"

    upload = api_client.post(
        f"/api/deliveries/{delivery['id']}/proof", files={"image": ("proof.png", _png_bytes(), "image/png")}
    )
    assert upload.status_code == 201
    proof_path = upload.json()["path"]
    assert (tmp_path / proof_path).exists()

    delivered = api_client.post(f"/api/deliveries/{delivery['id']}/deliver", json={"proof_image": proof_path})
    assert delivered.status_code == 200
    assert delivered.json()["status"] == "delivered"
    assert api_client.get(f"/api/orders/{delivery['order_id']}").json()["status"] == "delivered"

    again = api_client.post(f"/api/deliveries/{delivery['id']}/deliver", json={"proof_image": proof_path})
    assert again.status_code == 409
    assert again.json()["detail"]["kind"] == "invalid delivery transition"

    timeline = api_client.get(f"/api/deliveries/{delivery['id']}/timeline").json()
    assert [entry["status"] for entry in timeline][-1] == "delivered"
    updated = api_client.get(f"/api/subscriptions/{subscription['id']}").json()
    assert updated["next_delivery_date"] == "2024-08-06"


def test_tracking_endpoints(api_client: TestClient) -> None:
    _subscribed_address(api_client)
    api_client.post("/api/schedule/generate", params={"on": DAY})
    [delivery] = api_client.get("/api/deliveries", params={"on": DAY}).json()
    driver = api_client.post("/api/drivers", json={"name": "Anil"}).json()
    api_client.post(f"/api/deliveries/{delivery['id']}/assign", json={"driver_id": driver["id"]})
    api_client.post(f"/api/deliveries/{delivery['id']}/dispatch")

    assert api_client.get(f"/api/deliveries/{delivery['id']}/eta").status_code == 404
    ping = api_client.post(f"/api/deliveries/{delivery['id']}/location", json={"latitude": 10.0, "longitude": 76.25})
    assert ping.status_code == 201
    eta = api_client.get(f"/api/deliveries/{delivery['id']}/eta").json()
    assert eta["distance_km"] > 0
    assert eta["eta_minutes"] >= 1


def test_auto_assign_endpoints(api_client: TestClient) -> None:
    _subscribed_address(api_client)
    api_client.post("/api/schedule/generate", params={"on": DAY})
    [delivery] = api_client.get("/api/deliveries", params={"on": DAY}).json()
    driver = api_client.post(
        "/api/drivers", json={"name": "Anil", "zone_id": delivery["zone_id"], "max_deliveries_per_day": 5}
    ).json()
    assert driver["max_deliveries_per_day"] == 5

    result = api_client.post("/api/deliveries/auto-assign", params={"on": DAY}).json()
    capacity = api_client.get(f"/api/drivers/{driver['id']}/capacity", params={"on": DAY}).json()
    summary = api_client.get(f"/api/deliveries/zones/{delivery['zone_id']}/summary", params={"on": DAY}).json()

    assert result == {"assigned": 1, "unassigned": 0}
    assert api_client.get(f"/api/deliveries/{delivery['id']}").json()["driver_id"] == driver["id"]
    assert (capacity["assigned"], capacity["available"], capacity["utilization"]) == (1, 4, 20.0)
    assert (summary["total"], summary["assigned"], summary["unassigned"]) == (1, 1, 0)
    bulk = api_client.post(f"/api/drivers/{driver['id']}/assign-deliveries", json={"delivery_ids": [delivery["id"]]})
    assert [item["id"] for item in bulk.json()] == [delivery["id"]]
    assert api_client.post(f"/api/drivers/{driver['id']}/assign-deliveries", json={"delivery_ids": []}).status_code == 422


def test_subscription_lifecycle_endpoints(api_client: TestClient) -> None:
    subscription = _subscribed_address(api_client)
    base = f"/api/subscriptions/{subscription['id']}"

    assert api_client.post(f"{base}/pause", json={}).json()["status"] == "paused"
    assert api_client.put(f"{base}/vacation", json={"start": DAY, "end": DAY}).status_code == 409
    assert api_client.post(f"{base}/resume").json()["status"] == "active"
    assert api_client.post(f"{base}/cancel", json={"reason": "moving"}).json()["status"] == "cancelled"

    blocked = api_client.post(f"{base}/resume")
    assert blocked.status_code == 409
    assert blocked.json()["detail"]["kind"] == "invalid subscription transition"
    assert api_client.get(f"{base}/upcoming").json() == []


def test_bottle_endpoints(api_client: TestClient) -> None:
    subscription = _subscribed_address(api_client)
    bottle = api_client.post(
        "/api/bottles", json={"deposit_amount": "40.00", "purchase_cost": "15", "barcode": "8901234500017"}
    ).json()
    assert bottle["bottle_number"] == "BTL000001"
    assert api_client.get("/api/bottles/barcode/8901234500017").json()["id"] == bottle["id"]
    assert api_client.get("/api/bottles/barcode/unknown").status_code == 404

    issued = api_client.post(
        f"/api/bottles/{bottle['id']}/issue", json={"user_id": "u1", "subscription_id": subscription["id"]}
    )
    assert issued.status_code == 200
    balance = api_client.get("/api/bottles/users/u1/balance").json()
    assert balance["balance"] == 1
    assert Decimal(balance["total_deposit"]) == Decimal("40")

    returned = api_client.post(f"/api/bottles/{bottle['id']}/return", json={"condition": "damaged"}).json()
    assert Decimal(returned["refund_amount"]) == Decimal("20")
    assert api_client.get(f"/api/bottles/{bottle['id']}").json()["status"] == "damaged"
    assert len(api_client.get(f"/api/bottles/{bottle['id']}/logs").json()) == 2

    conflict = api_client.post(f"/api/bottles/{bottle['id']}/issue", json={"user_id": "u1"})
    assert conflict.status_code == 409
    short = api_client.post("/api/bottles/bulk-issue", json={"subscription_id": subscription["id"], "count": 2})
    assert short.status_code == 409
    assert short.json()["detail"]["kind"] == "insufficient stock"
    assert api_client.get("/api/bottles/stats").json()["damaged"] == 1


def test_error_mapping(api_client: TestClient) -> None:
    api_client.post("/api/zones", json=ZONE)

    assert api_client.get("/api/deliveries/missing").status_code == 404
    assert api_client.post("/api/zones", json=ZONE).status_code == 409
    bowtie = dict(ZONE, code="BOW", boundary_coordinates=[[0, 0], [1, 1], [0, 1], [1, 0]])
    assert api_client.post("/api/zones", json=bowtie).status_code == 422

    address = api_client.post("/api/addresses", json={"user_id": "u1", "pincode": "560001"}).json()
    assert address["zone_id"] is None
    assert api_client.post(f"/api/addresses/{address['id']}/assign-zone").status_code == 422
    plan = api_client.post("/api/plans", json={"name": "Daily"}).json()
    response = api_client.post(
        "/api/subscriptions",
        json={"user_id": "u1", "user_address_id": address["id"], "subscription_plan_id": plan["id"], "start_date": DAY},
    )
    assert response.status_code == 422


def test_zone_check_and_geojson(api_client: TestClient) -> None:
    api_client.post("/api/zones", json=ZONE)

    inside = api_client.post("/api/zones/check", json={"pincode": "682024", "latitude": 10.0, "longitude": 76.3}).json()
    outside = api_client.post("/api/zones/check", json={"pincode": "110001"}).json()
    collection = api_client.get("/api/zones/export/geojson").json()

    assert inside["serviceable"] is True
    assert inside["zone"]["code"] == "EDP"
    assert outside == {"serviceable": False, "zone": None, "reasons": ["no_zone"]}
    assert collection["type"] == "FeatureCollection"
    assert collection["features"][0]["properties"]["code"] == "EDP"
