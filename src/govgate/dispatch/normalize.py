"""E-way bill payload normalization.

Clients send one e-way bill shape; NIC and Whitebooks each want their own
variant of it. Missing optional fields get the defaults both portals
accept, and numeric fields sent as strings are coerced.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any

from govgate.core.errors import ClientRequestError

REQUIRED_FIELDS = ("supplyType", "docType", "docNo", "docDate", "fromGstin", "toGstin", "itemList")

_INT_FIELDS = (
    "fromPincode",
    "fromStateCode",
    "actFromStateCode",
    "toPincode",
    "toStateCode",
    "actToStateCode",
    "transactionType",
)

_TAX_FIELDS = ("cgstValue", "sgstValue", "igstValue", "cessValue", "cessNonAdvolValue")


def _or(value: Any, default: Any) -> Any:
    return default if value in (None, "") else value


def _int_or_raw(value: Any) -> Any:
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return value


def _number_or_raw(value: Any) -> Any:
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    return value


def validate_eway(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ClientRequestError("ewayData must be an object")
    missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "", [])]
    if missing:
        raise ClientRequestError(
            f"Missing required eWay Bill fields: {', '.join(missing)}",
            detail={"missing": missing},
        )
    return data


def _common(data: dict[str, Any]) -> dict[str, Any]:
    payload = {
        "supplyType": data.get("supplyType"),
        "subSupplyType": data.get("subSupplyType"),
        "subSupplyDesc": _or(data.get("subSupplyDesc"), ""),
        "docType": data.get("docType"),
        "docNo": data.get("docNo"),
        "docDate": data.get("docDate"),
        "fromGstin": data.get("fromGstin"),
        "fromTrdName": data.get("fromTrdName"),
        "fromAddr1": data.get("fromAddr1"),
        "fromAddr2": _or(data.get("fromAddr2"), ""),
        "fromPlace": data.get("fromPlace"),
        "fromPincode": data.get("fromPincode"),
        "actFromStateCode": data.get("actFromStateCode"),
        "fromStateCode": data.get("fromStateCode"),
        "toGstin": data.get("toGstin"),
        "toTrdName": data.get("toTrdName"),
        "toAddr1": data.get("toAddr1"),
        "toAddr2": _or(data.get("toAddr2"), ""),
        "toPlace": data.get("toPlace"),
        "toPincode": data.get("toPincode"),
        "actToStateCode": data.get("actToStateCode"),
        "toStateCode": data.get("toStateCode"),
        "transactionType": data.get("transactionType"),
        "totalValue": _number_or_raw(_or(data.get("totalValue"), 0)),
        "totInvValue": _number_or_raw(_or(data.get("totInvValue"), 0)),
        "transporterName": _or(data.get("transporterName"), ""),
        "transDocNo": _or(data.get("transDocNo"), ""),
        "transMode": str(_or(data.get("transMode"), "1")),
        "transDistance": str(_or(data.get("transDistance"), "0")),
        "vehicleNo": data.get("vehicleNo"),
        "vehicleType": _or(data.get("vehicleType"), "R"),
        "itemList": data.get("itemList"),
    }
    for field in _TAX_FIELDS:
        payload[field] = _number_or_raw(_or(data.get(field), 0))
    if data.get("otherValue") not in (None, ""):
        payload["otherValue"] = _number_or_raw(data["otherValue"])
    for field in _INT_FIELDS:
        payload[field] = _int_or_raw(payload[field])
    return payload


def normalize_for_nic(data: dict[str, Any], *, today: Callable[[], date] = date.today) -> dict[str, Any]:
    payload = _common(validate_eway(data))
    payload["transporterId"] = _or(data.get("transporterId"), "")
    payload["transDocDate"] = _or(data.get("transDocDate"), today().strftime("%d/%m/%Y"))
    return payload


def normalize_for_whitebooks(data: dict[str, Any]) -> dict[str, Any]:
    payload = _common(validate_eway(data))
    payload.update(
        {
            "dispatchFromGSTIN": _or(data.get("dispatchFromGSTIN"), data.get("fromGstin")),
            "dispatchFromTradeName": _or(data.get("dispatchFromTradeName"), data.get("fromTrdName")),
            "shipToGSTIN": _or(data.get("shipToGSTIN"), data.get("toGstin")),
            "shipToTradeName": _or(data.get("shipToTradeName"), data.get("toTrdName")),
            "transDocDate": _or(data.get("transDocDate"), data.get("docDate")),
        }
    )
    return payload


__all__ = ["REQUIRED_FIELDS", "normalize_for_nic", "normalize_for_whitebooks", "validate_eway"]
