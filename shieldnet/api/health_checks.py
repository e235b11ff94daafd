#!/usr/bin/env python3
"""
Health checks for the relayer service
"""
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import psutil

from shieldnet.api.logging_config import get_logger

logger = get_logger("health")

# Track relayer startup time
API_START_TIME = time.time()


async def check_rpc_health(rpc_url: str, timeout: float = 5.0) -> Dict[str, Any]:
    """
    Check Starknet RPC connectivity with a starknet_chainId call

    Args:
        rpc_url: JSON-RPC endpoint URL

    Returns:
        dict with status, chain_id, response_time_ms, and error (if any)
    """
    try:
        start = time.time()
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                rpc_url,
                json={"jsonrpc": "2.0", "id": 1, "method": "starknet_chainId", "params": []},
            )
            response.raise_for_status()
            body = response.json()
        response_time = (time.time() - start) * 1000

        if "error" in body:
            raise RuntimeError(str(body["error"]))
        return {
            "status": "healthy",
            "chain_id": body.get("result"),
            "response_time_ms": round(response_time, 2),
            "rpc_url": rpc_url,
        }
    except (httpx.HTTPError, RuntimeError, ValueError) as e:
        logger.error(f"RPC health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
            "rpc_url": rpc_url,
        }


def get_system_metrics() -> Dict[str, Any]:
    """
    Get system resource metrics

    Returns:
        dict with CPU, memory, and disk usage
    """
    cpu_percent = psutil.cpu_percent(interval=0.1)
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage("/")
    return {
        "cpu": {"usage_percent": round(cpu_percent, 2)},
        "memory": {
            "usage_percent": round(memory.percent, 2),
            "used_mb": round(memory.used / (1024 * 1024), 2),
            "total_mb": round(memory.total / (1024 * 1024), 2),
        },
        "disk": {
            "usage_percent": round(disk.percent, 2),
            "used_gb": round(disk.used / (1024 ** 3), 2),
            "total_gb": round(disk.total / (1024 ** 3), 2),
        },
    }


def get_uptime() -> Dict[str, Any]:
    """
    Get relayer uptime

    Returns:
        dict with uptime_seconds and uptime_formatted
    """
    uptime_seconds = time.time() - API_START_TIME
    uptime_minutes = uptime_seconds / 60
    uptime_hours = uptime_minutes / 60
    uptime_days = uptime_hours / 24

    if uptime_days >= 1:
        uptime_str = f"{int(uptime_days)}d {int(uptime_hours % 24)}h"
    elif uptime_hours >= 1:
        uptime_str = f"{int(uptime_hours)}h {int(uptime_minutes % 60)}m"
    else:
        uptime_str = f"{int(uptime_minutes)}m {int(uptime_seconds % 60)}s"

    return {
        "uptime_seconds": round(uptime_seconds, 2),
        "uptime_formatted": uptime_str,
    }


async def comprehensive_health_check(
    relayer_configured: bool,
    rpc_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Health of every relayer dependency

    Args:
        relayer_configured: Whether a relayer account address is set
        rpc_url: Starknet RPC URL to check

    Returns:
        dict with overall status and component statuses
    """
    checks: Dict[str, Any] = {
        "relayer_account": {"status": "healthy" if relayer_configured else "not_configured"},
    }
    if rpc_url:
        checks["rpc"] = await check_rpc_health(rpc_url)
    else:
        checks["rpc"] = {"status": "not_configured"}
    checks["system"] = get_system_metrics()
    checks["uptime"] = get_uptime()

    component_statuses = [checks["relayer_account"]["status"], checks["rpc"]["status"]]
    overall_status = "healthy" if all(s == "healthy" for s in component_statuses) else "unhealthy"

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "checks": checks,
    }


async def readiness_check(rpc_url: Optional[str] = None) -> bool:
    """
    Check if the relayer can accept /relay requests

    Returns:
        True if the RPC answers (or none is configured)
    """
    if not rpc_url:
        return True
    rpc_check = await check_rpc_health(rpc_url)
    return rpc_check["status"] == "healthy"
