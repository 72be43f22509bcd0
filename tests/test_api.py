import asyncio
import csv
import io

import pytest
from aiohttp.test_utils import TestClient, TestServer

from regpoll.common.config import DeviceConfig, PollRequest, PollSettings
from regpoll.common.exceptions import ExchangeTimeout
from regpoll.services.device.api import create_app
from regpoll.services.device.service import PollingService


class StubExchange:
    async def exchange(self, device, request, timeout):
        if device.name == "dead":
            raise ExchangeTimeout("no complete response within 3s")
        return list(range(request.quantity))


@pytest.fixture
def service():
    return PollingService(
        settings=PollSettings(request=PollRequest(start_address=10, quantity=2), interval_s=10),
        devices=[DeviceConfig(name="Meter", host="10.0.0.5")],
        exchange=StubExchange(),
    )


@pytest.fixture
async def client(service):
    client = TestClient(TestServer(create_app(service)))
    await client.start_server()
    yield client
    service.stop_polling()
    await service.join()
    await client.close()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status == 200
    body = await resp.json()
    assert body["status"] == "healthy"
    assert body["polling"] is False
    assert body["devices"] == 1
    assert body["scheduler"] is None


async def test_device_crud(client):
    resp = await client.post("/devices", json={"name": "Inverter", "host": "10.0.0.6", "unit_id": 2})
    assert resp.status == 201
    assert await resp.json() == {"index": 1, "name": "Inverter", "host": "10.0.0.6", "port": 502, "unit_id": 2}

    resp = await client.put("/devices/0", json={"name": "Meter 2", "host": "10.0.0.7", "port": 1502})
    assert resp.status == 200

    resp = await client.delete("/devices/1")
    assert (await resp.json())["name"] == "Inverter"

    resp = await client.get("/devices")
    assert await resp.json() == [
        {"index": 0, "name": "Meter 2", "host": "10.0.0.7", "port": 1502, "unit_id": 1},
    ]


async def test_invalid_device_rejected(client):
    resp = await client.post("/devices", json={"name": "x", "host": "h", "port": 70000})
    assert resp.status == 400
    body = await resp.json()
    assert body["detail"][0]["loc"] == ["port"]

    resp = await client.post("/devices", data="not json")
    assert resp.status == 400


async def test_unknown_device_index(client):
    resp = await client.delete("/devices/5")
    assert resp.status == 404
    assert (await resp.json())["detail"] == "No device at index 5"

    resp = await client.put("/devices/abc", json={"name": "x", "host": "h"})
    assert resp.status == 404


async def test_polling_start_stop(client, service):
    resp = await client.post("/polling/start")
    assert await resp.json() == {"polling": True}
    resp = await client.post("/polling/start")
    assert await resp.json() == {"polling": True}

    await asyncio.sleep(0.05)

    resp = await client.post("/polling/stop")
    assert await resp.json() == {"polling": False}
    await service.join()
    assert service.pass_count == 1


async def test_readings_listing_and_clear(client, service):
    service.add_device("dead", "10.0.0.9")
    await service.poll_pass()
    await service.poll_pass()

    resp = await client.get("/readings?limit=1")
    [latest] = await resp.json()
    assert latest["device_name"] == "dead"
    assert latest["registers"] is None
    assert latest["error"].startswith("Timeout:")

    resp = await client.get("/readings?limit=0")
    assert resp.status == 400

    resp = await client.delete("/readings")
    assert await resp.json() == {"readings": 0}
    assert service.readings == ()


async def test_export_csv(client, service):
    await service.poll_pass()

    resp = await client.get("/readings/export?format=csv")
    assert resp.status == 200
    assert 'filename="modbus_readings.csv"' in resp.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(await resp.text())))
    assert rows[0][5:] == ["reg10", "reg11", "error"]
    assert rows[1][5:] == ["0", "1", ""]


async def test_export_json(client, service):
    await service.poll_pass()

    resp = await client.get("/readings/export")
    assert resp.headers["Content-Type"].startswith("application/json")
    records = await resp.json(content_type=None)
    assert records[0]["registers"] == [0, 1]


async def test_export_rejects_unknown_format(client):
    resp = await client.get("/readings/export?format=xml")
    assert resp.status == 400
    assert (await resp.json())["detail"] == "Format must be 'csv' or 'json'"
