"""Provider dispatcher: one entry point per gateway operation.

Every operation goes through the same pipeline::

    breaker.execute(                          (fallback served while open)
        credentials.ensure_authenticated()    (retried, shared refresh)
        provider builds the Exchange          (payload encryption happens here)
        with_retry(send))
    exchange.decode(response)                 (outside the breaker)
    Success / BusinessError / TransportError  → result or typed error
    usage.record_usage(...)                   (exactly once, final outcome)

E-way bill generation goes to NIC for master e-way bills and to Whitebooks
otherwise; each has its own breaker so one portal failing never opens the
other's circuit. Cancellation and extension are Whitebooks only.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from govgate.core.errors import (
    AuthenticationError,
    ClientRequestError,
    EnvelopeError,
    ProviderProtocolError,
)
from govgate.core.logging import get_logger
from govgate.core.settings import FeatureFlags
from govgate.core.snapshots import DRIVER, VEHICLE, SnapshotStore
from govgate.core.usage import OperationType, UsageRecorder
from govgate.dispatch.normalize import normalize_for_nic, normalize_for_whitebooks
from govgate.providers.base import (
    BusinessError,
    Exchange,
    ProviderClient,
    ProviderResponse,
    Success,
    TransportError,
)
from govgate.providers.credentials import CredentialManager
from govgate.providers.nic import NIC_REJECTION_STATUS, NicEwayClient
from govgate.providers.vahan import VahanClient, driver_snapshot, vehicle_snapshot
from govgate.providers.whitebooks import WhitebooksEinvoiceClient, WhitebooksEwayClient, as_int
from govgate.resilience.circuit_breaker import CircuitBreakerRegistry
from govgate.resilience.retry import DEFAULT_POLICY, RetryPolicy, with_retry

logger = get_logger(__name__)


@dataclass(frozen=True)
class Tenant:
    """Who a call is made for. ``tenant_id`` is the mine id usage is billed to."""

    tenant_id: str
    org_id: str | None = None
    dispatcher_id: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    data: Any
    provider: str
    operation: OperationType
    from_snapshot: bool = False
    success: bool = True


class ProviderDispatcher:
    """Routes gateway operations to provider clients through the resilience stack.

    Args:
        vahan, nic, whitebooks_eway, whitebooks_einvoice: Provider clients
        breakers: Registry the per-operation breakers are taken from
        usage: Usage recorder
        snapshots: Store for VAHAN lookups; also the fallback while a
            VAHAN breaker is open
        policy: Retry policy for network calls and handshakes
        features: Retry and breaker switches
        sleep: Awaitable sleep used between retries
    """

    def __init__(
        self,
        *,
        vahan: VahanClient,
        nic: NicEwayClient,
        whitebooks_eway: WhitebooksEwayClient,
        whitebooks_einvoice: WhitebooksEinvoiceClient,
        breakers: CircuitBreakerRegistry,
        usage: UsageRecorder,
        snapshots: SnapshotStore | None = None,
        policy: RetryPolicy = DEFAULT_POLICY,
        features: FeatureFlags | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.vahan = vahan
        self.nic = nic
        self.whitebooks_eway = whitebooks_eway
        self.whitebooks_einvoice = whitebooks_einvoice
        self.breakers = breakers
        self.usage = usage
        self.snapshots = snapshots
        self.policy = policy
        self.features = features or FeatureFlags()
        self._sleep = sleep
        self._credentials = {
            p.name: CredentialManager(p.name, p.authenticate, default_ttl=p.settings.token_ttl_seconds)
            for p in (vahan, nic, whitebooks_eway, whitebooks_einvoice)
        }

    def credentials(self, provider: str) -> CredentialManager:
        return self._credentials[provider]

    # ── pipeline ─────────────────────────────────────────────────────────

    async def _retrying(self, operation: Callable[[], Awaitable[Any]], name: str) -> Any:
        if not self.features.enable_retry:
            return await operation()
        return await with_retry(operation, self.policy, operation_name=name, sleep=self._sleep)

    def _resolve(
        self,
        provider: ProviderClient,
        outcome: ProviderResponse,
        operation: OperationType,
    ) -> DispatchResult:
        if isinstance(outcome, Success):
            return DispatchResult(outcome.payload, provider.name, operation)

        if isinstance(outcome, BusinessError):
            raise ProviderProtocolError(
                outcome.message,
                provider=provider.name,
                error_code=outcome.code,
                details=outcome.details,
                http_status=NIC_REJECTION_STATUS if provider.name == NicEwayClient.name else None,
            ).with_context(operation=operation.value)

        if isinstance(outcome, TransportError):
            if outcome.error is not None:
                raise outcome.error
            if outcome.status_code in (401, 403):
                self._credentials[provider.name].invalidate()
                raise AuthenticationError(outcome.message, provider=provider.name)
            if outcome.status_code is not None and 400 <= outcome.status_code < 500:
                raise ClientRequestError(outcome.message, status_code=outcome.status_code)
            raise EnvelopeError(outcome.message).with_context(provider=provider.name)

        raise TypeError(f"Unexpected provider response: {outcome!r}")

    async def _dispatch(
        self,
        tenant: Tenant,
        operation: OperationType,
        breaker_name: str,
        provider: ProviderClient,
        build: Callable[[str], Exchange],
        *,
        fallback: Callable[[], DispatchResult] | None = None,
    ) -> DispatchResult:
        success = False
        started = time.perf_counter()
        try:
            provider.require_configured()
            credentials = self._credentials[provider.name]
            sent: list[Exchange] = []

            # The handshake runs behind the breaker too: an open circuit with
            # a fallback answers without authenticating, and a failing token
            # endpoint counts against the provider.
            async def network() -> httpx.Response:
                token = await self._retrying(credentials.ensure_authenticated, f"{provider.name}-auth")
                exchange = build(token)
                sent.append(exchange)
                return await self._retrying(lambda: provider.send(exchange), breaker_name)

            if self.features.enable_circuit_breaker:
                breaker = self.breakers.get_or_create(breaker_name)
                response = await breaker.execute(network, fallback=fallback)
            else:
                response = await network()

            if isinstance(response, DispatchResult):
                result = response
            else:
                result = self._resolve(provider, sent[-1].decode(response), operation)
            success = True
            return result
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 1)
            await asyncio.to_thread(
                self.usage.record_usage,
                tenant.tenant_id,
                operation,
                success,
                org_id=tenant.org_id,
                duration_ms=duration_ms,
            )
            logger.info(
                "dispatch_completed",
                operation=operation.value,
                provider=provider.name,
                breaker=breaker_name,
                tenant_id=tenant.tenant_id,
                success=success,
                duration_ms=duration_ms,
            )

    async def _snapshot_fallback(
        self, kind: str, key: str, operation: OperationType
    ) -> Callable[[], DispatchResult] | None:
        if self.snapshots is None:
            return None
        cached = await asyncio.to_thread(self.snapshots.get, kind, key)
        if cached is None:
            return None
        return lambda: DispatchResult(cached, self.vahan.name, operation, from_snapshot=True)

    async def _save_snapshot(self, kind: str, key: str, data: dict[str, Any], tenant: Tenant) -> None:
        assert self.snapshots is not None
        await asyncio.to_thread(self.snapshots.save, kind, key, data, tenant_id=tenant.tenant_id)

    # ── VAHAN ────────────────────────────────────────────────────────────

    async def validate_vehicle(
        self,
        tenant: Tenant,
        vehicle_number: str,
        payload: dict[str, Any] | None = None,
    ) -> DispatchResult:
        if not vehicle_number:
            raise ClientRequestError("vehicleNumber is required")
        body = {**(payload or {}), "vehicleNumber": vehicle_number}
        op = OperationType.VAHAN_VEHICLE

        result = await self._dispatch(
            tenant,
            op,
            "vahan-vehicle",
            self.vahan,
            lambda token: self.vahan.vehicle(token, body),
            fallback=await self._snapshot_fallback(VEHICLE, vehicle_number, op),
        )
        if self.snapshots is not None and not result.from_snapshot:
            snapshot = vehicle_snapshot(result.data, vehicle_number)
            if snapshot is not None:
                await self._save_snapshot(VEHICLE, vehicle_number, snapshot, tenant)
        return result

    async def validate_driver(
        self,
        tenant: Tenant,
        dl_number: str,
        dob: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> DispatchResult:
        if not dl_number:
            raise ClientRequestError("dlNumber is required")
        body = {**(payload or {}), "dlNumber": dl_number}
        if dob:
            body["dob"] = dob
        op = OperationType.VAHAN_DL

        result = await self._dispatch(
            tenant,
            op,
            "vahan-dl",
            self.vahan,
            lambda token: self.vahan.driver(token, body),
            fallback=await self._snapshot_fallback(DRIVER, dl_number, op),
        )
        if self.snapshots is not None and not result.from_snapshot:
            snapshot = driver_snapshot(result.data)
            if snapshot is not None:
                await self._save_snapshot(DRIVER, snapshot["dlNumber"], snapshot, tenant)
        return result

    # ── E-way bills ──────────────────────────────────────────────────────

    async def generate_eway_bill(
        self,
        tenant: Tenant,
        payload: dict[str, Any],
        is_master_eway: bool = False,
    ) -> DispatchResult:
        op = OperationType.EWAY_GENERATE
        if is_master_eway:
            nic_payload = normalize_for_nic(payload)
            return await self._dispatch(
                tenant, op, "eway-generate-nic", self.nic,
                lambda token: self.nic.generate(token, nic_payload),
            )
        wb_payload = normalize_for_whitebooks(payload)
        return await self._dispatch(
            tenant, op, "eway-generate-whitebooks", self.whitebooks_eway,
            lambda token: self.whitebooks_eway.generate(token, wb_payload),
        )

    async def cancel_eway_bill(
        self,
        tenant: Tenant,
        ewb_no: Any,
        reason_code: Any,
        remark: str | None = None,
    ) -> DispatchResult:
        if not ewb_no or not reason_code:
            raise ClientRequestError("ewayBillNo and cancelRsnCode are required")
        as_int(ewb_no, "ewayBillNo")
        as_int(reason_code, "cancelRsnCode")
        return await self._dispatch(
            tenant, OperationType.EWAY_CANCEL, "eway-cancel", self.whitebooks_eway,
            lambda token: self.whitebooks_eway.cancel(token, ewb_no, reason_code, remark),
        )

    async def extend_eway_bill(self, tenant: Tenant, payload: dict[str, Any]) -> DispatchResult:
        if not isinstance(payload, dict) or not payload:
            raise ClientRequestError("Extension payload is required")
        return await self._dispatch(
            tenant, OperationType.EWAY_EXTEND, "eway-extend", self.whitebooks_eway,
            lambda token: self.whitebooks_eway.extend(token, payload),
        )

    # ── E-invoices ───────────────────────────────────────────────────────

    async def generate_einvoice(self, tenant: Tenant, payload: dict[str, Any]) -> DispatchResult:
        if not isinstance(payload, dict) or not payload:
            raise ClientRequestError("invoiceData is required")
        return await self._dispatch(
            tenant, OperationType.EINVOICE_GENERATE, "einvoice-generate", self.whitebooks_einvoice,
            lambda token: self.whitebooks_einvoice.generate(token, payload),
        )

    async def cancel_einvoice(
        self,
        tenant: Tenant,
        irn: str,
        reason: Any,
        remark: str | None = None,
    ) -> DispatchResult:
        if not irn or not reason:
            raise ClientRequestError("irn and cancelReason are required")
        return await self._dispatch(
            tenant, OperationType.EINVOICE_CANCEL, "einvoice-cancel", self.whitebooks_einvoice,
            lambda token: self.whitebooks_einvoice.cancel(token, irn, reason, remark),
        )

    async def get_einvoice_by_irn(self, tenant: Tenant, irn: str) -> DispatchResult:
        if not irn:
            raise ClientRequestError("irn is required")
        return await self._dispatch(
            tenant, OperationType.EINVOICE_GET_IRN, "einvoice-get", self.whitebooks_einvoice,
            lambda token: self.whitebooks_einvoice.get_by_irn(token, irn),
        )

    async def get_einvoice_by_doc_details(
        self,
        tenant: Tenant,
        doc_type: str,
        doc_no: str,
        doc_date: str,
    ) -> DispatchResult:
        if not (doc_type and doc_no and doc_date):
            raise ClientRequestError("docType, docNo and docDate are required")
        return await self._dispatch(
            tenant, OperationType.EINVOICE_GET_DETAILS, "einvoice-get", self.whitebooks_einvoice,
            lambda token: self.whitebooks_einvoice.get_by_doc_details(token, doc_type, doc_no, doc_date),
        )


__all__ = ["DispatchResult", "ProviderDispatcher", "Tenant"]
