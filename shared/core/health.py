"""
Health and metrics endpoints.

Liveness never touches dependencies; readiness pings the database (and the
cart store when it is Redis backed) and reports pass / warn / fail per check.
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Callable, Dict, Optional
from datetime import datetime
from enum import Enum
import os
import time
import psutil
import logging

logger = logging.getLogger(__name__)

class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"

def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"

class ServiceHealth:
    """Builds the health router for one service.

    ``dependencies`` maps a check name to a callable taking the current
    request; the callable raises on failure, returns ``None`` when the
    dependency is not configured, and returns anything else on success.
    """

    def __init__(self, service_name: str, version: str = "1.0.0", dependencies: Optional[Dict[str, Callable[[Request], Any]]] = None):
        self.service_name = service_name
        self.version = version
        self.dependencies = dependencies or {}
        self.start_time = time.time()
        self.checks_performed = 0

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now()
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        def readiness(request: Request) -> JSONResponse:
            checks = self.run_checks(request)
            overall = self.overall_status(checks)
            code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == HealthStatus.FAIL else status.HTTP_200_OK
            return JSONResponse(status_code=code, content={
                "status": overall,
                "version": self.version,
                "serviceId": self.service_name,
                "checks": checks,
                "timestamp": _now()
            })

        @router.get("/metrics")
        async def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            memory = process.memory_info()
            return {
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.start_time,
                "checks_performed": self.checks_performed,
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "memory_vms_bytes": memory.vms,
                    "cpu_percent": process.cpu_percent(),
                    "num_threads": process.num_threads()
                }
            }

        return router

    def run_checks(self, request: Request) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        checks = {name: self._check_dependency(check, request) for name, check in self.dependencies.items()}
        checks["system:memory"] = self._check_memory()
        return checks

    def _check_dependency(self, check: Callable[[Request], Any], request: Request) -> Dict[str, Any]:
        start_time = time.time()
        try:
            result = check(request)
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {"status": HealthStatus.FAIL, "output": str(e), "time": _now()}
        if result is None:
            return {"status": HealthStatus.WARN, "output": "not configured", "time": _now()}
        return {
            "status": HealthStatus.PASS,
            "observedValue": f"{(time.time() - start_time) * 1000:.2f}",
            "observedUnit": "ms",
            "time": _now()
        }

    def _check_memory(self) -> Dict[str, Any]:
        available_mb = psutil.virtual_memory().available / (1024 ** 2)
        if available_mb < 100:
            status_val = HealthStatus.FAIL
        elif available_mb < 500:
            status_val = HealthStatus.WARN
        else:
            status_val = HealthStatus.PASS
        return {
            "status": status_val,
            "observedValue": f"{available_mb:.2f}",
            "observedUnit": "MB",
            "time": _now()
        }

    @staticmethod
    def overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = [check.get("status", HealthStatus.PASS) for check in checks.values()]
        if HealthStatus.FAIL in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS
