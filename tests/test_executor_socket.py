"""
Executor WebSocket tests.

Starlette's TestClient runs the app on its own event loop in a worker
thread, so these tests are synchronous and prepare the database with
asyncio.run on a NullPool engine.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from starlette.websockets import WebSocketDisconnect

from order_manager.database import DEMO_USERNAME, get_db, init_db, seed_catalog
from order_manager.main import app
from order_manager.models import Order, OrderStatus, User
from order_manager.schemas import FoodItemCreate, PlaceItemCreate
from order_manager.services.channel import InMemoryExecutionChannel, get_execution_channel
from order_manager.services.orders import create_order
from tests.conftest import EXECUTOR_TOKEN


@pytest.fixture
def sync_session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'executor.db'}", poolclass=NullPool)
    maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def prepare():
        await init_db(engine)
        await seed_catalog(maker)

    asyncio.run(prepare())
    yield maker
    asyncio.run(engine.dispose())


@pytest.fixture
def order_uuid(sync_session_maker):
    async def make_order():
        async with sync_session_maker() as session:
            user_id = await session.scalar(select(User.id).where(User.username == DEMO_USERNAME))
        async with sync_session_maker() as session:
            order = await create_order(
                session,
                user_id,
                [FoodItemCreate(name="bread", quantity=2)],
                [PlaceItemCreate(name="table1", quantity_to_deliver=2)],
            )
        return order.uuid

    return asyncio.run(make_order())


@pytest.fixture
def test_client(sync_session_maker):
    channel = InMemoryExecutionChannel()

    async def override_get_db():
        async with sync_session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_execution_channel] = lambda: channel

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


def read_status(session_maker, order_uuid) -> OrderStatus:
    async def read():
        async with session_maker() as session:
            return (await session.get(Order, order_uuid)).status

    return asyncio.run(read())


def test_executor_receives_execute_message(test_client, order_uuid):
    with test_client.websocket_connect("/ws/executor", headers={"x-executor-token": EXECUTOR_TOKEN}) as ws:
        assert ws.receive_json() == {"type": "connected", "channel": "memory"}

        response = test_client.post(f"/api/orders/{order_uuid}/execute")
        assert response.status_code == 200

        message = ws.receive_json()

    assert message["type"] == "execute_order"
    assert message["order_uuid"] == str(order_uuid)
    assert message["payload"]["foods"][0]["name"] == "bread"
    assert message["payload"]["places"][0]["name"] == "table1"


def test_executor_reports_drive_the_lifecycle(test_client, sync_session_maker, order_uuid):
    with test_client.websocket_connect("/ws/executor", headers={"x-executor-token": EXECUTOR_TOKEN}) as ws:
        ws.receive_json()

        ws.send_json({"type": "order_status", "order_uuid": str(order_uuid), "status": "running"})
        assert ws.receive_json() == {"success": True, "order_uuid": str(order_uuid), "status": "Running"}

        ws.send_json({"type": "order_status", "order_uuid": str(order_uuid), "status": "created"})
        refused = ws.receive_json()
        assert refused["success"] is False
        assert refused["error"] == "invalid_status_transition"

        ws.send_json({"type": "order_status", "order_uuid": str(order_uuid), "status": "failed"})
        assert ws.receive_json()["status"] == "Failed"

    assert read_status(sync_session_maker, order_uuid) == OrderStatus.FAILED


def test_executor_malformed_report_is_rejected(test_client):
    with test_client.websocket_connect("/ws/executor", headers={"x-executor-token": EXECUTOR_TOKEN}) as ws:
        ws.receive_json()

        ws.send_json({"type": "order_status", "order_uuid": "not-a-uuid", "status": "running"})
        reply = ws.receive_json()

    assert reply["success"] is False
    assert reply["error"] == "invalid_message"


def test_executor_requires_token(test_client):
    with pytest.raises(WebSocketDisconnect):
        with test_client.websocket_connect("/ws/executor", headers={"x-executor-token": "wrong"}) as ws:
            ws.receive_json()


def test_executor_binary_frame_is_rejected_and_connection_survives(test_client, order_uuid):
    with test_client.websocket_connect("/ws/executor", headers={"x-executor-token": EXECUTOR_TOKEN}) as ws:
        ws.receive_json()

        ws.send_bytes(b'{"type": "order_status"}')
        reply = ws.receive_json()
        assert reply["success"] is False
        assert reply["error"] == "invalid_message"

        # Still subscribed: the execute message reaches this executor
        response = test_client.post(f"/api/orders/{order_uuid}/execute")
        assert response.status_code == 200
        assert ws.receive_json()["order_uuid"] == str(order_uuid)

        ws.send_json({"type": "order_status", "order_uuid": str(order_uuid), "status": "running"})
        assert ws.receive_json()["status"] == "Running"
