import logging
from typing import Any, Optional

import httpx

from .base import AddressIdentity, AdapterError, DataSource, PartialRecord, ProviderOutcome, PropertyProvider
from .extract import (
    ASSESSED_VALUE, LAST_SALE_DATE, LAST_SALE_PRICE, FieldSpec,
    extract, first_present, integer, latest_entry, text,
)
from ..core.config import settings
from ..core.utils import to_number

logger = logging.getLogger(__name__)

PLACEHOLDER_KEY = "your_rentcast_api_key"

FIELDS = {
    "assessed_value": ASSESSED_VALUE,
    "market_value_estimate": FieldSpec(("value", "estimatedValue"), coerce=to_number),
    "last_sale_price": LAST_SALE_PRICE,
    "last_sale_date": LAST_SALE_DATE,
    "square_feet": FieldSpec(("squareFootage", "livingArea", "buildingSize"), coerce=to_number),
    "year_built": FieldSpec(("yearBuilt", "yearConstructed"), coerce=integer),
    "bedrooms": FieldSpec(("bedrooms", "beds", "bedroomCount"), coerce=to_number),
    "bathrooms": FieldSpec(("bathrooms", "baths", "bathroomCount"), coerce=to_number),
    "lot_size": FieldSpec(("lotSize", "lotSquareFootage"), coerce=to_number),
    "property_type": FieldSpec(("propertyType", "type"), coerce=text),
    "county": FieldSpec(("county", "countyName"), coerce=text),
    "parcel_number": FieldSpec(("apn", "parcelNumber", "parcelId", "assessorID"), coerce=text),
    "rent_estimate": FieldSpec(("rentEstimate", "rent"), coerce=to_number),
}

def map_property(prop: Any) -> PartialRecord:
    """Translate one RentCast property object into a partial canonical record."""
    if not isinstance(prop, dict):
        return PartialRecord.empty(DataSource.RENTCAST)

    values, missing = extract(prop, FIELDS)

    # Raw blobs are passed through for display; they are not used for scoring.
    for name, keys in (
        ("owner", ("owner",)),
        ("hoa", ("hoa",)),
        ("features", ("features",)),
        ("tax_assessment_history", ("taxAssessments",)),
        ("sale_history", ("saleHistory", "history")),
    ):
        blob = first_present(prop, keys)
        if blob is not None:
            values[name] = blob

    newest = latest_entry(prop.get("taxAssessments"))
    if newest is not None and newest[0] is not None:
        values["tax_year"] = integer(newest[0])

    return PartialRecord(source=DataSource.RENTCAST, values=values, missing=missing)

class RentCastClient(PropertyProvider):
    """
    Provider A. GET /properties returns a list of matching properties;
    the first one is taken.
    """
    source = DataSource.RENTCAST

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_KEY

    async def resolve(self, identity: AddressIdentity) -> ProviderOutcome:
        if not self.configured:
            return PartialRecord.empty(self.source)

        params = {
            "address": identity.street,
            "city": identity.city,
            "state": identity.state,
            "zipCode": identity.zip_code,
        }
        headers = {"X-Api-Key": self.api_key, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.get(f"{self.base_url}/properties", params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("rentcast request failed", extra={"provider": self.source.value, "error": str(exc)})
            return AdapterError(self.source, f"RentCast exception: {exc}")

        if r.status_code >= 300:
            body = r.text[:200]
            logger.warning(
                "rentcast returned an error",
                extra={"provider": self.source.value, "status": r.status_code},
            )
            return AdapterError(self.source, f"RentCast returned {r.status_code}: {body}", r.status_code, body)

        try:
            data = r.json()
        except ValueError:
            logger.info("rentcast returned a non-JSON body", extra={"provider": self.source.value})
            return PartialRecord.empty(self.source)

        if isinstance(data, list):
            prop = data[0] if data else None
        else:
            prop = data
        return map_property(prop)

def rentcast_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> RentCastClient:
    return RentCastClient(
        settings.RENTCAST_API_KEY,
        settings.RENTCAST_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        transport=transport,
    )
