from fastapi import APIRouter, Depends, HTTPException
from starlette.status import HTTP_503_SERVICE_UNAVAILABLE
from ..schemas import CacheStatsResponse, SweepResponse
from ..services.fusion_service import FusionService
from ..core.config import settings
from ..core.errors import CacheUnavailable
from ..core.security import require_api_key
from ..data.attom_client import PLACEHOLDER_KEY as ATTOM_PLACEHOLDER
from ..data.rentcast_client import PLACEHOLDER_KEY as RENTCAST_PLACEHOLDER
from .property import service_dep

router = APIRouter()

def _has_key(value: str | None, placeholder: str) -> bool:
    return bool(value) and value != placeholder

@router.get("/admin/cache", response_model=CacheStatsResponse)
def get_cache_stats(
    _auth = Depends(require_api_key),
    svc: FusionService = Depends(service_dep),
):
    try:
        stats = svc.cache_statistics()
    except CacheUnavailable as exc:
        raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return {
        **stats,
        "cache_ttl_days": settings.PROPERTY_CACHE_DAYS,
        "has_rentcast_key": _has_key(settings.RENTCAST_API_KEY, RENTCAST_PLACEHOLDER),
        "has_attom_key": _has_key(settings.ATTOM_API_KEY, ATTOM_PLACEHOLDER),
    }

@router.delete("/admin/cache", response_model=SweepResponse)
def delete_expired_cache(
    _auth = Depends(require_api_key),
    svc: FusionService = Depends(service_dep),
):
    try:
        removed = svc.sweep_expired()
    except CacheUnavailable as exc:
        raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return {"removed": removed}
