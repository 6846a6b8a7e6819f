"""Data-access status, cache and performance routes."""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from core.container import container
from core.logging import get_logger
from services.data_access import DataAccessService
from services.rate_limit import RateLimiter
from services.tiers import Module, Tier, check_record_limit, get_tier_limits

logger = get_logger(__name__)
router = APIRouter(prefix="/api/data-access", tags=["data-access"])


def get_data_access() -> DataAccessService:
    return container.data_access()


def get_rate_limiter() -> RateLimiter:
    return container.rate_limiter()


async def enforce_rate_limit(request: Request,
                             limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    identifier = request.client.host if request.client else "anonymous"
    result = limiter.check(identifier)
    if not result.allowed:
        raise HTTPException(status_code=429, detail="Too many requests")


@router.get("/status", dependencies=[Depends(enforce_rate_limit)])
async def connection_status(service: DataAccessService = Depends(get_data_access)):
    """Connection health, fallback mode and cache summary."""
    return {"success": True, **service.get_connection_status().to_dict()}


@router.get("/cache", dependencies=[Depends(enforce_rate_limit)])
async def cache_info(service: DataAccessService = Depends(get_data_access)):
    return {"success": True, **service.get_cache_info().to_dict()}


@router.delete("/cache", dependencies=[Depends(enforce_rate_limit)])
async def clear_cache(
    endpoint: Optional[str] = None,
    params: Optional[str] = Query(default=None, description="JSON-encoded parameter map"),
    service: DataAccessService = Depends(get_data_access)
):
    """Clear one entry (endpoint + params), one endpoint, or everything."""
    parsed = None
    if params is not None:
        try:
            parsed = json.loads(params)
        except ValueError:
            raise HTTPException(status_code=400, detail="params must be a JSON object")
        if not isinstance(parsed, dict):
            raise HTTPException(status_code=400, detail="params must be a JSON object")

    cleared = service.clear_cache(endpoint, parsed)
    logger.info("Cache cleared via API", endpoint=endpoint, cleared=cleared)
    return {"success": True, "cleared": cleared}


@router.get("/performance", dependencies=[Depends(enforce_rate_limit)])
async def performance_stats(
    window_ms: Optional[int] = Query(default=None, ge=1),
    service: DataAccessService = Depends(get_data_access)
):
    return {"success": True, **service.get_performance_stats(window_ms).to_dict()}


@router.get("/performance/recommendations", dependencies=[Depends(enforce_rate_limit)])
async def performance_recommendations(service: DataAccessService = Depends(get_data_access)):
    return {"success": True, "recommendations": service.get_performance_recommendations()}


@router.get("/tiers/{tier}/check-limit")
async def tier_check_limit(tier: Tier, module: Module, current: int = Query(ge=0)):
    """Whether one more record of ``module`` fits in the tier."""
    result = check_record_limit(tier, module, current)
    return {
        "success": True,
        "allowed": result.allowed,
        "limit": result.limit,
        "current": result.current,
        "message": result.message,
        "trial_days": get_tier_limits(tier).trial_days,
    }
