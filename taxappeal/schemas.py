from typing import Any, Literal
from pydantic import BaseModel, Field

Condition = Literal["excellent", "good", "fair", "poor"]

class PropertyDetails(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    data_source: Literal["rentcast", "attom", "synthetic"] = "synthetic"
    assessed_value: float | None = None
    market_value_estimate: float | None = None
    last_sale_price: float | None = None
    last_sale_date: str | None = None
    square_feet: float | None = None
    year_built: int | None = None
    bedrooms: float | None = None
    bathrooms: float | None = None
    lot_size: float | None = None
    property_type: str | None = None
    county: str | None = None
    parcel_number: str | None = None
    tax_year: int | None = None
    owner: Any = None
    hoa: Any = None
    features: Any = None
    rent_estimate: float | None = None
    tax_assessment_history: Any = None
    sale_history: Any = None
    acquisition_error: str | None = None

class PropertyResponse(PropertyDetails):
    from_cache: bool = False
    etag: str | None = None

class CorrectionsRequest(BaseModel):
    condition: Condition | None = None
    recent_renovations: bool = False
    additional_notes: str | None = None
    overrides: dict[str, Any] = Field(default_factory=dict)

class AssessmentRequest(BaseModel):
    property: PropertyDetails | None = None
    address: str | None = Field(default=None, min_length=4)
    corrections: CorrectionsRequest | None = None

class AssessmentResponse(BaseModel):
    viability: Literal["high", "medium", "low", "none"]
    over_assessment_amount: float
    over_assessment_percentage: float
    estimated_savings: float
    confidence: int = Field(ge=0, le=95)
    reasons: list[str]
    current_assessment: float
    estimated_market_value: int
    recommendation: str
    data_source: str | None = None
    disclaimer: str = "This assessment is an estimate and not a financial appraisal."

class CacheStatsResponse(BaseModel):
    total_entries: int
    valid_entries: int
    expired_entries: int
    cache_ttl_days: int
    has_rentcast_key: bool
    has_attom_key: bool

class SweepResponse(BaseModel):
    removed: int
