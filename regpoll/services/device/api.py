"""
HTTP API

JSON endpoints for collaborators: device list management, polling
control, reading retrieval and export.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError

from regpoll.common.config import DeviceConfig
from regpoll.common.exceptions import ConfigError, DeviceNotFoundError
from regpoll.common.logging_setup import get_service_logger

from .export import readings_to_csv, readings_to_json, readings_to_records

logger = get_service_logger("device.api")

SERVICE_KEY = web.AppKey("polling_service", object)


class DeviceCreate(BaseModel):
    """Create/replace device request."""
    name: str = Field(..., min_length=1)
    host: str = Field(..., min_length=1)
    port: int = Field(502, ge=1, le=65535)
    unit_id: int = Field(1, ge=0, le=255)


class ReadingsQuery(BaseModel):
    limit: Optional[int] = Field(None, ge=1)


def create_app(service) -> web.Application:
    """Build the aiohttp application bound to a PollingService"""
    app = web.Application()
    app[SERVICE_KEY] = service

    app.router.add_get("/health", health_handler)
    app.router.add_get("/devices", list_devices_handler)
    app.router.add_post("/devices", add_device_handler)
    app.router.add_put("/devices/{index}", update_device_handler)
    app.router.add_delete("/devices/{index}", remove_device_handler)
    app.router.add_post("/polling/start", start_polling_handler)
    app.router.add_post("/polling/stop", stop_polling_handler)
    app.router.add_get("/readings", list_readings_handler)
    app.router.add_delete("/readings", clear_readings_handler)
    app.router.add_get("/readings/export", export_readings_handler)
    return app


def _error(status: int, detail) -> web.Response:
    return web.json_response({"detail": detail}, status=status)


def _http_error(exc_class: type[web.HTTPException], detail) -> web.HTTPException:
    return exc_class(
        text=json.dumps({"detail": detail}),
        content_type="application/json",
    )


async def _parse_device(request: web.Request) -> DeviceConfig:
    try:
        body = await request.json()
    except ValueError:
        raise _http_error(web.HTTPBadRequest, "request body must be JSON")

    try:
        payload = DeviceCreate.model_validate(body)
        return DeviceConfig(**payload.model_dump())
    except ValidationError as e:
        raise _http_error(web.HTTPBadRequest, json.loads(e.json(include_url=False)))
    except ConfigError as e:
        raise _http_error(web.HTTPBadRequest, e.message)


def _parse_index(request: web.Request) -> int:
    try:
        return int(request.match_info["index"])
    except ValueError:
        raise _http_error(web.HTTPNotFound, "device index must be an integer")


async def health_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    return web.json_response({
        "status": "healthy",
        "service": "regpoll",
        "uptime": int(service.uptime_seconds()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "polling": service.is_polling,
        "devices": len(service.devices),
        "readings": len(service.reading_log),
        "passes": service.pass_count,
        "scheduler": service.get_scheduler_stats(),
    })


async def list_devices_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    return web.json_response([
        {"index": i, **d.to_dict()} for i, d in enumerate(service.devices)
    ])


async def add_device_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    device = await _parse_device(request)
    index = service.device_registry.append(device)
    return web.json_response({"index": index, **device.to_dict()}, status=201)


async def update_device_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    index = _parse_index(request)
    device = await _parse_device(request)
    try:
        service.update_device(index, device)
    except DeviceNotFoundError as e:
        return _error(404, e.message)
    return web.json_response({"index": index, **device.to_dict()})


async def remove_device_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    index = _parse_index(request)
    try:
        removed = service.remove_device(index)
    except DeviceNotFoundError as e:
        return _error(404, e.message)
    return web.json_response({"index": index, **removed.to_dict()})


async def start_polling_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    await service.start_polling()
    return web.json_response({"polling": service.is_polling})


async def stop_polling_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    service.stop_polling()
    return web.json_response({"polling": service.is_polling})


async def list_readings_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    try:
        query = ReadingsQuery.model_validate(dict(request.query))
    except ValidationError as e:
        return _error(400, json.loads(e.json(include_url=False)))
    readings = service.reading_log.snapshot(limit=query.limit)
    return web.json_response(readings_to_records(readings))


async def clear_readings_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    service.clear_readings()
    return web.json_response({"readings": 0})


async def export_readings_handler(request: web.Request) -> web.Response:
    """
    Export the reading log for download.

    format=json returns newest-first records; format=csv returns one row
    per reading, oldest first, with one column per register.
    """
    service = request.app[SERVICE_KEY]
    export_format = request.query.get("format", "json")
    if export_format not in ("json", "csv"):
        return _error(400, "Format must be 'csv' or 'json'")

    readings = service.readings
    filename = "modbus_readings"

    if export_format == "json":
        return web.Response(
            text=readings_to_json(readings),
            content_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}.json"'},
        )

    poll_request = service.settings.request
    return web.Response(
        text=readings_to_csv(readings, poll_request.start_address, poll_request.quantity),
        content_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'},
    )
