import json
from functools import lru_cache

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from ..schemas import PropertyResponse
from ..services.fusion_service import FusionService, fusion_service
from ..core.security import require_api_key
from ..core.utils import weak_etag
from ..data.base import AddressIdentity

router = APIRouter()

@lru_cache(maxsize=1)
def service_dep() -> FusionService:
    # One per process so the memo layer actually sees repeat lookups.
    return fusion_service()

def identity_from_query(
    address: str | None = Query(default=None, min_length=4),
    street: str | None = Query(default=None),
    city: str = Query(default=""),
    state: str = Query(default=""),
    zip_code: str = Query(default=""),
) -> AddressIdentity:
    if street and street.strip():
        return AddressIdentity(street=street.strip(), city=city.strip(), state=state.strip(), zip_code=zip_code.strip())
    if address and address.strip():
        return AddressIdentity.parse(address)
    raise HTTPException(status_code=400, detail="Address is required")

@router.get("/property", response_model=PropertyResponse)
async def get_property(
    response: Response,
    identity: AddressIdentity = Depends(identity_from_query),
    if_none_match: str | None = Header(default=None, alias="if-none-match"),
    _auth = Depends(require_api_key),
    svc: FusionService = Depends(service_dep),
):
    record, from_cache = await svc.resolve(identity)
    payload = record.to_dict()
    etag = weak_etag(json.dumps(payload, separators=(',',':'), sort_keys=True, default=str).encode("utf-8"))
    if if_none_match and if_none_match == etag:
        return Response(status_code=304, headers={"ETag": etag})
    payload["from_cache"] = from_cache
    payload["etag"] = etag
    response.headers["ETag"] = etag
    return payload
