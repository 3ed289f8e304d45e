import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from ..schemas import AssessmentRequest, AssessmentResponse
from ..services.fusion_service import FusionService
from ..services.valuation_service import Corrections, score_assessment
from ..core.errors import PreconditionViolation
from ..core.security import require_api_key
from ..data.base import AddressIdentity, PropertyRecord
from .property import service_dep

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/assessment", response_model=AssessmentResponse)
async def post_assessment(
    body: AssessmentRequest,
    _auth = Depends(require_api_key),
    svc: FusionService = Depends(service_dep),
):
    # Either the caller already holds a (possibly edited) record, or we fuse one.
    if body.property is not None:
        record = PropertyRecord.from_dict(body.property.model_dump())
    elif body.address and body.address.strip():
        record = await svc.resolve_property(AddressIdentity.parse(body.address))
    else:
        raise HTTPException(status_code=400, detail="Property details or address required")

    corrections = None
    if body.corrections is not None:
        corrections = Corrections(**body.corrections.model_dump())

    try:
        result = score_assessment(record, corrections)
    except PreconditionViolation as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    logger.info(
        "assessment scored",
        extra={"viability": result.viability, "confidence": result.confidence,
               "data_source": record.data_source.value},
    )
    return {**asdict(result), "data_source": record.data_source.value}
