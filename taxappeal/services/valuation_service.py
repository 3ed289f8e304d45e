"""
Appeal-viability scoring.

A deterministic blend of weak signals (recent sale, price per square foot,
condition, renovation, age) into a market-value estimate, compared against
the assessed value. Not an appraisal.
"""
import math
from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from ..core.errors import PreconditionViolation
from ..core.utils import parse_date, to_number
from ..data.base import PropertyRecord
from ..data.extract import integer, iso_date, text

AVERAGE_TAX_RATE = 0.012

# $/sq ft by property type (California-ish placeholders)
PRICE_PER_SQFT = {
    "Single Family": 450,
    "Condo": 550,
    "Townhouse": 400,
    "Multi-Family": 350,
}
DEFAULT_PRICE_PER_SQFT = 400

CONDITION_MULTIPLIERS = {
    "excellent": 1.15,
    "good": 1.0,
    "fair": 0.85,
    "poor": 0.70,
}

RENOVATION_PREMIUM = 1.08

# Strict ">" on each threshold; the boundary belongs to the lower tier.
VIABILITY_TIERS = (
    (15.0, "high"),
    (8.0, "medium"),
    (3.0, "low"),
)

MAX_CONFIDENCE = 95

@dataclass
class Corrections:
    """User-edited values layered over the fused record before scoring."""
    condition: Optional[str] = None
    recent_renovations: bool = False
    additional_notes: Optional[str] = None
    overrides: Dict[str, Any] = field(default_factory=dict)

@dataclass
class AssessmentResult:
    viability: str
    over_assessment_amount: float
    over_assessment_percentage: float
    estimated_savings: float
    confidence: int
    reasons: List[str]
    current_assessment: float
    estimated_market_value: int
    recommendation: str

_OVERRIDABLE = frozenset(
    f.name for f in fields(PropertyRecord) if f.name not in ("data_source", "acquisition_error")
)

# User-edited values arrive as whatever the client typed; coerce to the record's types.
_OVERRIDE_COERCERS: Dict[str, Callable[[Any], Any]] = {
    "assessed_value": to_number,
    "market_value_estimate": to_number,
    "last_sale_price": to_number,
    "square_feet": to_number,
    "bedrooms": to_number,
    "bathrooms": to_number,
    "lot_size": to_number,
    "rent_estimate": to_number,
    "year_built": integer,
    "tax_year": integer,
    "last_sale_date": iso_date,
    "street": text,
    "city": text,
    "state": text,
    "zip_code": text,
    "property_type": text,
    "county": text,
    "parcel_number": text,
}

def apply_corrections(record: PropertyRecord, corrections: Optional[Corrections]) -> PropertyRecord:
    """Layer overrides onto the record. Unknown names and uncoercible values are dropped."""
    if corrections is None or not corrections.overrides:
        return record
    updates = {}
    for name, value in corrections.overrides.items():
        if name not in _OVERRIDABLE or value is None:
            continue
        coerce = _OVERRIDE_COERCERS.get(name)
        if coerce is not None:
            value = coerce(value)
            if value is None:
                continue
        updates[name] = value
    return replace(record, **updates)

def price_per_sqft(property_type: Optional[str]) -> int:
    return PRICE_PER_SQFT.get(property_type or "", DEFAULT_PRICE_PER_SQFT)

def years_since(sale_date: Optional[str], today: date) -> Optional[float]:
    parsed = parse_date(sale_date)
    if parsed is None:
        return None
    return (today - parsed).days / 365

def property_age(year_built: Optional[int], today: date) -> Optional[int]:
    if not year_built:
        return None
    return today.year - int(year_built)

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def estimate_market_value(record: PropertyRecord, corrections: Corrections, today: date) -> int:
    market_value = float(record.assessed_value)

    # 1) Recent sale anchors the estimate
    sale_price = to_number(record.last_sale_price)
    years = years_since(record.last_sale_date, today) if sale_price else None
    if years is not None:
        if years < 2:
            market_value = sale_price * 1.05
        elif years < 5:
            market_value = sale_price * (1 + years * 0.025)

    # 2) Equal-weight blend with the size-based estimate
    square_feet = to_number(record.square_feet)
    if square_feet and square_feet > 0:
        estimated_by_size = square_feet * price_per_sqft(record.property_type)
        market_value = (market_value + estimated_by_size) / 2

    # 3) Condition
    market_value *= CONDITION_MULTIPLIERS.get(corrections.condition or "", 1.0)

    # 4) Renovations
    if corrections.recent_renovations:
        market_value *= RENOVATION_PREMIUM

    # 5) Age
    age = property_age(record.year_built, today)
    if age is not None:
        if age > 50:
            market_value *= 0.95
        elif age < 5:
            market_value *= 1.05

    return _round_half_up(market_value)

def determine_viability(over_assessment_percentage: float) -> str:
    for threshold, tier in VIABILITY_TIERS:
        if over_assessment_percentage > threshold:
            return tier
    return "none"

def calculate_confidence(record: PropertyRecord, corrections: Corrections, today: date) -> int:
    confidence = 50

    if to_number(record.last_sale_price):
        years = years_since(record.last_sale_date, today)
        if years is not None:
            if years < 2:
                confidence += 25
            elif years < 5:
                confidence += 15

    square_feet = to_number(record.square_feet)
    if square_feet and square_feet > 0:
        confidence += 10

    if to_number(record.bedrooms) and to_number(record.bathrooms):
        confidence += 10

    if corrections.condition:
        confidence += 5

    return min(MAX_CONFIDENCE, confidence)

def generate_reasons(record: PropertyRecord, corrections: Corrections,
                     over_assessment_percentage: float, today: date) -> List[str]:
    reasons = []

    if over_assessment_percentage > 10:
        reasons.append(
            f"Your property is assessed {over_assessment_percentage:.1f}% above estimated market value"
        )

    sale_price = to_number(record.last_sale_price)
    if sale_price and sale_price < to_number(record.assessed_value) * 0.9:
        reasons.append("Recent sale price significantly lower than current assessment")

    if corrections.condition in ("fair", "poor"):
        reasons.append(f"Property condition ({corrections.condition}) not reflected in assessment")

    age = property_age(record.year_built, today)
    if age is not None:
        if age > 40:
            reasons.append(f"Property age ({age} years) may warrant depreciation adjustment")
        if not corrections.recent_renovations and age > 20:
            reasons.append("No recent renovations to justify high assessment")

    if not reasons:
        if over_assessment_percentage > 0:
            reasons.append("Minor over-assessment detected")
        else:
            reasons.append("Assessment appears to be in line with market value")

    return reasons

def generate_recommendation(viability: str, over_assessment_percentage: float, estimated_savings: float) -> str:
    pct = f"{over_assessment_percentage:.1f}%"
    savings = f"${estimated_savings:,.0f}"
    if viability == "high":
        return (
            f"Strong appeal recommended. With {pct} over-assessment, you could save approximately "
            f"{savings} annually. File your appeal as soon as possible."
        )
    if viability == "medium":
        return (
            f"Appeal is worthwhile. Your {pct} over-assessment could result in {savings} annual savings. "
            "Consider filing an appeal."
        )
    if viability == "low":
        return (
            f"Appeal may be beneficial. While the {pct} over-assessment is modest, you could still save "
            f"{savings} annually."
        )
    return (
        "Appeal not recommended at this time. Your assessment appears to be in line with market value. "
        "Monitor your assessment annually for changes."
    )

def score_assessment(
    record: PropertyRecord,
    corrections: Optional[Corrections] = None,
    today: Optional[date] = None,
) -> AssessmentResult:
    """
    Score a (possibly user-corrected) canonical record.

    Raises PreconditionViolation when the assessed value is missing or zero;
    nothing is computed in that case.
    """
    corrections = corrections or Corrections()
    record = apply_corrections(record, corrections)
    assessed = to_number(record.assessed_value)
    if not assessed or assessed <= 0:
        raise PreconditionViolation("Property details with assessed value required")
    record = replace(record, assessed_value=assessed)
    today = today or date.today()

    market_value = estimate_market_value(record, corrections, today)
    over_amount = max(0, assessed - market_value)
    over_pct = over_amount / assessed * 100
    savings = over_amount * AVERAGE_TAX_RATE
    viability = determine_viability(over_pct)

    return AssessmentResult(
        viability=viability,
        over_assessment_amount=over_amount,
        over_assessment_percentage=over_pct,
        estimated_savings=savings,
        confidence=calculate_confidence(record, corrections, today),
        reasons=generate_reasons(record, corrections, over_pct, today),
        current_assessment=assessed,
        estimated_market_value=market_value,
        recommendation=generate_recommendation(viability, over_pct, savings),
    )
