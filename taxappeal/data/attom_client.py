import logging
from typing import Any, Optional

import httpx

from .base import AddressIdentity, AdapterError, DataSource, PartialRecord, ProviderOutcome, PropertyProvider
from .extract import FieldSpec, extract, integer, iso_date, text
from ..core.config import settings
from ..core.utils import to_number

logger = logging.getLogger(__name__)

PLACEHOLDER_KEY = "your_attom_api_key"

# ATTOM nests everything; paths are dotted.
FIELDS = {
    "assessed_value": FieldSpec(("assessment.assessed.assdTotalValue",), coerce=to_number),
    "market_value_estimate": FieldSpec(("assessment.market.mktTotalValue",), coerce=to_number),
    "last_sale_price": FieldSpec(("sale.amount.saleAmt",), coerce=to_number),
    "last_sale_date": FieldSpec(("sale.amount.saleDate", "sale.saleTransDate"), coerce=iso_date),
    "square_feet": FieldSpec(("building.size.livingSize",), coerce=to_number),
    "year_built": FieldSpec(("building.construction.yearBuilt", "summary.yearBuilt"), coerce=integer),
    "bedrooms": FieldSpec(("building.rooms.beds",), coerce=to_number),
    "bathrooms": FieldSpec(("building.rooms.bathsTotal",), coerce=to_number),
    "lot_size": FieldSpec(("lot.lotSize", "lot.lotSize2"), coerce=to_number),
    "property_type": FieldSpec(("summary.propertyType", "summary.propType"), coerce=text),
    "county": FieldSpec(("area.countrySecSubd",), coerce=text),
    "parcel_number": FieldSpec(("parcel.apn", "identifier.apn"), coerce=text),
    "tax_year": FieldSpec(("assessment.assessed.assdYear", "assessment.tax.taxYear"), coerce=integer),
}

def map_property(prop: Any) -> PartialRecord:
    if isinstance(prop, list):
        prop = prop[0] if prop else None
    if not isinstance(prop, dict):
        return PartialRecord.empty(DataSource.ATTOM)
    values, missing = extract(prop, FIELDS)
    return PartialRecord(source=DataSource.ATTOM, values=values, missing=missing)

class AttomClient(PropertyProvider):
    """
    Provider B. GET /property/detail; the payload's "property" member is an
    object or a one-element list depending on the API version.
    """
    source = DataSource.ATTOM

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
            "zip": identity.zip_code,
        }
        headers = {"apikey": self.api_key, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.get(f"{self.base_url}/property/detail", params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("attom request failed", extra={"provider": self.source.value, "error": str(exc)})
            return AdapterError(self.source, f"ATTOM exception: {exc}")

        if r.status_code >= 300:
            body = r.text[:200]
            logger.warning(
                "attom returned an error",
                extra={"provider": self.source.value, "status": r.status_code},
            )
            return AdapterError(self.source, f"ATTOM returned {r.status_code}: {body}", r.status_code, body)

        try:
            data = r.json()
        except ValueError:
            logger.info("attom returned a non-JSON body", extra={"provider": self.source.value})
            return PartialRecord.empty(self.source)

        prop = data.get("property") if isinstance(data, dict) else None
        return map_property(prop)

def attom_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> AttomClient:
    return AttomClient(
        settings.ATTOM_API_KEY,
        settings.ATTOM_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        transport=transport,
    )
