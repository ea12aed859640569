import json

import httpx
import pytest

from flowtrack.main import create_app
from flowtrack.domain.exceptions import OrderFeedError
from tests.fakes import FakeOrderFeed, raw_feed_order

pytestmark = pytest.mark.integration


def headers(role, user_id=None, name=None):
    return {
        "X-User-Id": user_id or f"u-{role.lower()}",
        "X-User-Name": name or f"{role} User",
        "X-User-Email": f"{role.lower()}@example.com",
        "X-User-Role": role,
    }


TEAM = headers("Team")
VENDOR = headers("Vendor")
DIGITIZER = headers("Digitizer", name="Dora")


@pytest.fixture()
def order_feed():
    return FakeOrderFeed([raw_feed_order(77, 1077)])


@pytest.fixture()
async def client(session_factory, blob_store, order_feed):
    app = create_app(lifespan=None)
    app.state.session_factory = session_factory
    app.state.blob_store = blob_store
    app.state.order_feed = order_feed
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def create(client, **fields):
    payload = {"customer_name": "Jane Doe", "product_name": "10 x Mug"}
    payload.update(fields)
    response = await client.post("/api/orders", json=payload, headers=TEAM)
    assert response.status_code == 201, response.text
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.json() == {"status": "healthy"}


async def test_identity_headers_are_required(client):
    assert (await client.get("/api/orders")).status_code == 401
    response = await client.get("/api/orders", headers=headers("Janitor"))
    assert response.status_code == 401


async def test_create_get_and_list(client):
    created = await create(client, priority="High")
    assert created["id"] == "ORD-001"
    assert created["status"] == "At Team"
    assert created["line_items"] == [{"name": "Mug", "quantity": 10, "shipped_quantity": 0}]

    fetched = (await client.get("/api/orders/ORD-001", headers=VENDOR)).json()
    assert fetched["priority"] == "High"

    await create(client)
    listed = (await client.get("/api/orders", headers=VENDOR)).json()
    assert [o["id"] for o in listed] == ["ORD-002", "ORD-001"]


async def test_negative_line_item_quantity_is_rejected(client):
    payload = {"customer_name": "Jane Doe", "line_items": [{"name": "Cap", "quantity": -4}]}
    response = await client.post("/api/orders", json=payload, headers=TEAM)
    assert response.status_code == 422
    assert (await client.get("/api/orders", headers=TEAM)).json() == []


async def test_created_line_items_ignore_shipped_quantity(client):
    created = await create(client, line_items=[{"name": "Mug", "quantity": 2, "shipped_quantity": 5}])
    assert created["line_items"] == [{"name": "Mug", "quantity": 2, "shipped_quantity": 0}]


async def test_get_missing_order(client):
    response = await client.get("/api/orders/ORD-404", headers=TEAM)
    assert response.status_code == 404
    assert "ORD-404" in response.json()["detail"]


async def test_status_update_with_files(client, blob_store):
    order = await create(client)
    response = await client.put(
        f"/api/orders/{order['id']}/status",
        data={"status": "At Digitizer", "digitizer_id": "u-digitizer", "digitizer_name": "Dora",
              "note": "rush job", "expected_version": "1"},
        files=[("attachment_files", ("logo.png", b"\x89PNG", "image/png"))],
        headers=TEAM,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "At Digitizer"
    assert body["digitizer_status"] == "Pending"
    assert body["version"] == 2
    assert body["attachments"][0]["name"] == "logo.png"
    assert body["notes"][-1]["content"] == "Assigned to Dora\nrush job"
    assert blob_store.uploaded == ["logo.png"]


async def test_illegal_transition_is_a_conflict(client):
    order = await create(client)
    response = await client.put(f"/api/orders/{order['id']}/status", data={"status": "At Vendor"}, headers=TEAM)
    assert response.status_code == 409
    assert "refresh" in response.json()["detail"]


async def test_same_state_is_a_conflict(client):
    order = await create(client)
    response = await client.put(f"/api/orders/{order['id']}/status", data={"status": "At Team"}, headers=TEAM)
    assert response.status_code == 409
    assert response.json()["detail"].startswith("This action cannot be completed")


async def test_stale_version_is_a_conflict(client):
    order = await create(client)
    response = await client.put(
        f"/api/orders/{order['id']}/status",
        data={"status": "At Digitizer", "expected_version": "5"},
        headers=TEAM,
    )
    assert response.status_code == 409


async def test_priority_change_by_vendor_is_forbidden(client):
    order = await create(client)
    response = await client.put(
        f"/api/orders/{order['id']}/status", data={"status": "At Team", "priority": "Low"}, headers=VENDOR
    )
    assert response.status_code == 403


async def test_malformed_shipment_is_rejected(client):
    order = await create(client)
    response = await client.put(
        f"/api/orders/{order['id']}/status",
        data={"status": "Partially Shipped", "shipped_items": "not-json"},
        headers=VENDOR,
    )
    assert response.status_code == 400


async def test_too_many_files(client, blob_store):
    order = await create(client)
    files = [("attachment_files", (f"f{i}.txt", b"x", "text/plain")) for i in range(6)]
    response = await client.put(
        f"/api/orders/{order['id']}/status", data={"status": "At Team"}, files=files, headers=TEAM
    )
    assert response.status_code == 400
    assert blob_store.uploaded == []


async def test_upload_failure_is_a_bad_gateway(client, blob_store):
    order = await create(client)
    blob_store.fail_on.add("logo.png")
    response = await client.put(
        f"/api/orders/{order['id']}/status",
        data={"status": "At Digitizer"},
        files=[("attachment_files", ("logo.png", b"png", "image/png"))],
        headers=TEAM,
    )
    assert response.status_code == 502
    stored = (await client.get(f"/api/orders/{order['id']}", headers=TEAM)).json()
    assert stored["status"] == "At Team"
    assert stored["version"] == 1


async def test_shipping_through_the_api(client):
    order = await create(client)
    order_id = order["id"]
    for status, hdrs in (("At Digitizer", TEAM), ("Team Review", DIGITIZER), ("At Vendor", TEAM)):
        response = await client.put(f"/api/orders/{order_id}/status", data={"status": status}, headers=hdrs)
        assert response.status_code == 200, response.text

    response = await client.put(
        f"/api/orders/{order_id}/status",
        data={"status": "Partially Shipped", "shipped_items": json.dumps([{"name": "Mug", "quantity": 10}])},
        headers=VENDOR,
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "Out for Delivery"
    assert response.json()["line_items"][0]["shipped_quantity"] == 10


async def test_notes_endpoints(client):
    order = await create(client)
    added = await client.post(
        f"/api/orders/{order['id']}/notes", json={"content": "Thread colours?", "target_role": "Team"},
        headers=DIGITIZER,
    )
    assert added.status_code == 200
    note_id = added.json()["notes"][-1]["id"]

    forbidden = await client.put(
        f"/api/orders/{order['id']}/notes/{note_id}", json={"content": "hijack"}, headers=VENDOR
    )
    assert forbidden.status_code == 403

    edited = await client.put(
        f"/api/orders/{order['id']}/notes/{note_id}", json={"content": "Thread colours: navy"}, headers=DIGITIZER
    )
    assert edited.status_code == 200
    assert edited.json()["notes"][-1]["is_edited"] is True

    empty = await client.post(f"/api/orders/{order['id']}/notes", json={"content": "  "}, headers=TEAM)
    assert empty.status_code == 400


async def test_attachment_download_and_delete(client):
    order = await create(client)
    uploaded = await client.put(
        f"/api/orders/{order['id']}/status",
        data={"status": "At Team"},
        files=[("attachment_files", ("brief.txt", b"hello blob store", "text/plain"))],
        headers=TEAM,
    )
    attachment_id = uploaded.json()["attachments"][0]["id"]

    download = await client.get(f"/api/orders/{order['id']}/attachments/{attachment_id}/download", headers=VENDOR)
    assert download.status_code == 200
    assert download.content == b"hello blob store"
    assert 'filename="brief.txt"' in download.headers["content-disposition"]

    assert (await client.delete(
        f"/api/orders/{order['id']}/attachments/{attachment_id}", headers=VENDOR
    )).status_code == 403
    deleted = await client.delete(f"/api/orders/{order['id']}/attachments/{attachment_id}", headers=TEAM)
    assert deleted.status_code == 200
    assert deleted.json()["attachments"] == []

    missing = await client.get(f"/api/orders/{order['id']}/attachments/{attachment_id}/download", headers=TEAM)
    assert missing.status_code == 404


async def test_sync_endpoint(client, order_feed):
    first = await client.post("/api/orders/sync", headers=TEAM)
    assert first.status_code == 200
    assert first.json()["message"] == "Successfully imported 1 new orders."
    assert first.json()["imported_orders"][0]["source_order_number"] == "#1077"

    second = (await client.post("/api/orders/sync", headers=TEAM)).json()
    assert second["message"] == "All recent orders are already in FlowTrack."
    assert second["skipped"] == 1


async def test_sync_feed_error(client, order_feed):
    order_feed.error = OrderFeedError("Order feed authentication failed. Please check the access token.")
    response = await client.post("/api/orders/sync", headers=TEAM)
    assert response.status_code == 502
