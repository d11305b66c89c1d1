"""Kernel services."""

from settlement_kernel.services.base import BaseService
from settlement_kernel.services.cache_service import (
    CacheService,
    CacheStats,
    invalidate_tenant_views,
)

__all__ = ["BaseService", "CacheService", "CacheStats", "invalidate_tenant_views"]
