from __future__ import annotations
import time
from typing import Dict, Any
from enum import Enum

from jobpush.infra.db_async import get_pool
from jobpush.infra.logging_config import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class AsyncHealthCheck:
    """Base class for async health checks"""

    def __init__(self, name: str, critical: bool = True):
        self.name = name
        self.critical = critical

    async def check(self) -> Dict[str, Any]:
        """
        Perform health check.
        Returns dict with 'status', 'details', and optionally 'error'
        """
        raise NotImplementedError


class AsyncDatabaseHealthCheck(AsyncHealthCheck):
    """Check database connectivity and that the documents table is readable"""

    def __init__(self, table: str = "documents"):
        super().__init__("database", critical=True)
        self.table = table

    async def check(self) -> Dict[str, Any]:
        start = time.monotonic()

        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                if result != 1:
                    return {
                        "status": HealthStatus.UNHEALTHY,
                        "details": "Unexpected query result",
                        "error": f"Expected 1, got {result}"
                    }

                if await conn.fetchval("SELECT to_regclass($1)", self.table) is None:
                    return {
                        "status": HealthStatus.UNHEALTHY,
                        "details": "Missing required table",
                        "error": f"Missing: {self.table}"
                    }

                duration = time.monotonic() - start
                if duration > 1.0:
                    return {
                        "status": HealthStatus.DEGRADED,
                        "details": f"Slow database response: {duration:.3f}s",
                        "response_time": duration
                    }

                return {
                    "status": HealthStatus.HEALTHY,
                    "details": "Database operational",
                    "response_time": duration
                }

        except Exception as exc:
            logger.error("Database health check failed", exc_info=True)
            return {
                "status": HealthStatus.UNHEALTHY,
                "details": "Database connection failed",
                "error": str(exc)[:200]
            }


class PushSenderHealthCheck(AsyncHealthCheck):
    """Report whether the push sender has working credentials (no network call)"""

    def __init__(self, sender):
        super().__init__("push_sender", critical=False)
        self.sender = sender

    async def check(self) -> Dict[str, Any]:
        if getattr(self.sender, "auth_failing", False):
            return {
                "status": HealthStatus.DEGRADED,
                "details": f"{self.sender.name} credentials rejected by the delivery service",
            }
        if self.sender.is_configured():
            return {"status": HealthStatus.HEALTHY, "details": f"{self.sender.name} configured"}
        return {
            "status": HealthStatus.DEGRADED,
            "details": f"{self.sender.name} not configured",
        }


class AsyncHealthChecker:
    """Aggregate async health checks"""

    def __init__(self, checks: list[AsyncHealthCheck] | None = None):
        self.checks: list[AsyncHealthCheck] = checks if checks is not None else [AsyncDatabaseHealthCheck()]

    async def run_checks(self, include_non_critical: bool = True) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            {
                "status": "healthy" | "degraded" | "unhealthy",
                "checks": {...},
                "timestamp": float
            }
        """
        results = {}
        overall_status = HealthStatus.HEALTHY

        for check in self.checks:
            if not include_non_critical and not check.critical:
                continue

            result = await check.check()
            results[check.name] = result

            if result["status"] == HealthStatus.UNHEALTHY and check.critical:
                overall_status = HealthStatus.UNHEALTHY
            elif result["status"] != HealthStatus.HEALTHY and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        return {
            "status": overall_status.value,
            "checks": results,
            "timestamp": time.time()
        }
