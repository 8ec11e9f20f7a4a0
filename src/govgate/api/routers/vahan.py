"""
VAHAN router: vehicle registration and driving licence validation.

Endpoints:
    POST /vahan/vehicle                Live registration lookup
    POST /vahan/driver                 Live licence lookup
    GET  /vahan/vehicle/{number}       Last stored registration snapshot
    GET  /vahan/driver/{number}        Last stored licence snapshot
    POST /vahan/save-vehicle           Store or update vehicle details by hand
    POST /vahan/save-driver            Store or update driver details by hand

While a VAHAN breaker is open, live lookups answer from the stored
snapshot when one exists (``fromSnapshot: true`` in the message metadata).

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from govgate.api.deps import CurrentGateway, CurrentTenant, Dispatcher
from govgate.api.schemas.common import DriverRecord, DriverRequest, VehicleRecord, VehicleRequest, ok
from govgate.core.errors import ClientRequestError, GatewayError
from govgate.core.logging import get_logger
from govgate.core.snapshots import DRIVER, VEHICLE, SnapshotStore
from govgate.dispatch.dispatcher import DispatchResult

logger = get_logger(__name__)

router = APIRouter(prefix="/vahan")


def _lookup_response(result: DispatchResult, label: str) -> dict[str, Any]:
    message = f"{label} validated successfully"
    if result.from_snapshot:
        message = f"{label} served from stored snapshot (VAHAN unavailable)"
    body = ok(result.data, message)
    body["fromSnapshot"] = result.from_snapshot
    return body


@router.post("/vehicle")
async def validate_vehicle(body: VehicleRequest, tenant: CurrentTenant, dispatcher: Dispatcher):
    """Look up a registration certificate.

    Example:
        POST /api/v1/vahan/vehicle
        {"vehicleNumber": "MH12AB1234"}
    """
    extra = body.model_dump(exclude={"vehicleNumber"})
    result = await dispatcher.validate_vehicle(tenant, body.vehicleNumber, extra)
    return _lookup_response(result, "Vehicle")


@router.post("/driver")
async def validate_driver(body: DriverRequest, tenant: CurrentTenant, dispatcher: Dispatcher):
    """Look up a driving licence; ``dob`` is forwarded when given."""
    extra = body.model_dump(exclude={"dlNumber", "dob"})
    result = await dispatcher.validate_driver(tenant, body.dlNumber, body.dob, extra)
    return _lookup_response(result, "Driving licence")


@router.get("/vehicle/{number}")
def vehicle_snapshot(number: str, gateway: CurrentGateway, tenant: CurrentTenant):
    snapshot = gateway.snapshots.get(VEHICLE, number)
    if snapshot is None:
        raise ClientRequestError(f"No stored snapshot for vehicle {number}", status_code=404)
    return ok(snapshot, "Vehicle snapshot")


@router.get("/driver/{number}")
def driver_snapshot(number: str, gateway: CurrentGateway, tenant: CurrentTenant):
    snapshot = gateway.snapshots.get(DRIVER, number)
    if snapshot is None:
        raise ClientRequestError(f"No stored snapshot for licence {number}", status_code=404)
    return ok(snapshot, "Driving licence snapshot")


def _upsert(store: SnapshotStore, kind: str, key: str, record: dict[str, Any], tenant_id: str) -> dict[str, Any]:
    existing = store.get(kind, key)
    merged = {**(existing or {}), **record}
    if not store.save(kind, key, merged, tenant_id=tenant_id):
        raise GatewayError(f"Could not store {kind} {key}")
    logger.info("snapshot_upserted", kind=kind, key=key, updated=existing is not None)
    return merged


@router.post("/save-vehicle")
def save_vehicle(body: VehicleRecord, gateway: CurrentGateway, tenant: CurrentTenant):
    """Store vehicle details without calling VAHAN.

    Fields are merged into any existing snapshot for the same ``truckNo``.
    """
    record = _upsert(gateway.snapshots, VEHICLE, body.truckNo, body.model_dump(), tenant.tenant_id)
    return ok(record, "Vehicle data saved successfully")


@router.post("/save-driver")
def save_driver(body: DriverRecord, gateway: CurrentGateway, tenant: CurrentTenant):
    record = _upsert(gateway.snapshots, DRIVER, body.dlNumber, body.model_dump(), tenant.tenant_id)
    return ok(record, "Driver data saved successfully")
