import uuid

from order_manager.core.errors import InternalError
from tests.conftest import EXECUTOR_TOKEN, count_order_rows


def order_body(foods, places):
    return {
        "foods": [
            {"name": name, "quantity": quantity, "withdrawal_order": i}
            for i, (name, quantity) in enumerate(foods)
        ],
        "places": [
            {"name": name, "quantity_to_deliver": quantity}
            for name, quantity in places
        ],
    }


async def post_order(client, user_id, foods, places):
    return await client.post(
        "/api/orders",
        json=order_body(foods, places),
        headers={"x-user-id": str(user_id)},
    )


# =============================================================================
# CREATE
# =============================================================================

async def test_create_then_read_round_trip(client, user_id):
    response = await post_order(client, user_id, [("bread", 2)], [("table1", 2)])

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    order_uuid = body["order_uuid"]

    status = await client.get(f"/api/orders/{order_uuid}/status")
    assert status.status_code == 200
    assert status.json() == {"status": "Created"}

    order = (await client.get(f"/api/orders/{order_uuid}")).json()
    assert order["uuid"] == order_uuid
    assert order["user_id"] == user_id
    assert [(f["name"], f["quantity"]) for f in order["foods"]] == [("bread", 2)]
    assert [(p["name"], p["quantity_to_deliver"]) for p in order["places"]] == [("table1", 2)]


async def test_create_with_mismatched_quantities(client, session_maker, user_id):
    response = await post_order(client, user_id, [("bread", 3)], [("table1", 2)])

    assert response.status_code == 422
    assert response.json()["error"] == "quantity_mismatch"
    assert await count_order_rows(session_maker) == {"orders": 0, "details": 0, "places": 0}


async def test_create_with_unknown_food(client, session_maker, user_id):
    response = await post_order(client, user_id, [("caviar", 1)], [("table1", 1)])

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "invalid_parameter",
        "detail": "Unknown food: caviar",
    }
    assert await count_order_rows(session_maker) == {"orders": 0, "details": 0, "places": 0}


async def test_create_with_unknown_requester_is_generic_internal_error(client, session_maker):
    response = await post_order(client, 9999, [("bread", 1)], [("table1", 1)])

    assert response.status_code == 500
    assert response.json()["error"] == InternalError.error
    assert await count_order_rows(session_maker) == {"orders": 0, "details": 0, "places": 0}


async def test_create_requires_authenticated_user(client):
    response = await client.post("/api/orders", json=order_body([("bread", 1)], [("table1", 1)]))

    assert response.status_code == 401


async def test_create_rejects_non_positive_quantity(client, user_id):
    response = await post_order(client, user_id, [("bread", 0)], [("table1", 0)])

    assert response.status_code == 422
    assert "detail" in response.json()


async def test_create_rejects_quantity_too_large_to_store(client, session_maker, user_id):
    response = await post_order(client, user_id, [("bread", 2**63)], [("table1", 2**63)])

    assert response.status_code == 422
    assert await count_order_rows(session_maker) == {"orders": 0, "details": 0, "places": 0}


async def test_create_accepts_largest_storable_quantity(client, user_id):
    largest = 2**31 - 1
    response = await post_order(client, user_id, [("bread", largest)], [("table1", largest)])

    assert response.status_code == 201


# =============================================================================
# READ
# =============================================================================

async def test_list_orders(client, user_id):
    for _ in range(2):
        await post_order(client, user_id, [("bread", 1)], [("table1", 1)])

    response = await client.get("/api/orders", params={"limit": 1})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert len(body["orders"]) == 1
    assert body["orders"][0]["foods"][0]["name"] == "bread"


async def test_list_orders_rejects_unknown_status(client):
    response = await client.get("/api/orders", params={"status": "shipped"})

    assert response.status_code == 400


async def test_unknown_order_is_404(client):
    missing = uuid.uuid4()

    for path in (f"/api/orders/{missing}", f"/api/orders/{missing}/status"):
        response = await client.get(path)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


# =============================================================================
# EXECUTE
# =============================================================================

async def test_execute_publishes_to_subscriber(client, channel, user_id):
    order_uuid = (await post_order(client, user_id, [("bread", 2)], [("table1", 2)])).json()["order_uuid"]

    async with channel.subscribe() as subscription:
        response = await client.post(f"/api/orders/{order_uuid}/execute")
        message = await subscription.get(timeout=1)

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert str(message.order_uuid) == order_uuid


async def test_execute_without_executor_is_503(client, user_id):
    order_uuid = (await post_order(client, user_id, [("bread", 2)], [("table1", 2)])).json()["order_uuid"]

    response = await client.post(f"/api/orders/{order_uuid}/execute")

    assert response.status_code == 503
    assert response.json()["error"] == "channel_unavailable"
    assert (await client.get(f"/api/orders/{order_uuid}/status")).json() == {"status": "Created"}


async def test_execute_started_order_is_409(client, channel, user_id):
    order_uuid = (await post_order(client, user_id, [("bread", 2)], [("table1", 2)])).json()["order_uuid"]
    await client.patch(
        f"/api/orders/{order_uuid}/status",
        json={"status": "running"},
        headers={"x-executor-token": EXECUTOR_TOKEN},
    )

    async with channel.subscribe() as subscription:
        response = await client.post(f"/api/orders/{order_uuid}/execute")
        assert await subscription.get(timeout=0.05) is None

    assert response.status_code == 409
    assert response.json()["error"] == "order_already_started"


# =============================================================================
# STATUS UPDATE
# =============================================================================

async def test_status_update_requires_executor_token(client, user_id):
    order_uuid = (await post_order(client, user_id, [("bread", 1)], [("table1", 1)])).json()["order_uuid"]

    response = await client.patch(f"/api/orders/{order_uuid}/status", json={"status": "running"})

    assert response.status_code == 403


async def test_status_update_advances_and_refuses_backward(client, user_id):
    order_uuid = (await post_order(client, user_id, [("bread", 1)], [("table1", 1)])).json()["order_uuid"]
    headers = {"x-executor-token": EXECUTOR_TOKEN}

    for status in ("RUNNING", "completed"):
        response = await client.patch(f"/api/orders/{order_uuid}/status", json={"status": status}, headers=headers)
        assert response.status_code == 204

    assert (await client.get(f"/api/orders/{order_uuid}/status")).json() == {"status": "Completed"}

    response = await client.patch(f"/api/orders/{order_uuid}/status", json={"status": "running"}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_status_transition"


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "healthy"
    assert response.json()["execution_channel"] == "healthy"
