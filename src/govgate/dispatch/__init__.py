"""Provider selection and the per-call resilience pipeline."""

from govgate.dispatch.dispatcher import DispatchResult, ProviderDispatcher, Tenant

__all__ = ["DispatchResult", "ProviderDispatcher", "Tenant"]
