from typing import Protocol, List, Optional, Dict, Any, Union
from dataclasses import dataclass, field, fields, asdict
from enum import Enum

from ..core.utils import normalize_address

# ----- Data shapes (thin & explicit) -----

class DataSource(str, Enum):
    RENTCAST = "rentcast"     # provider A
    ATTOM = "attom"           # provider B
    SYNTHETIC = "synthetic"

# A record is "non-empty" when at least one of these is populated.
CORE_FIELDS = (
    "assessed_value",
    "market_value_estimate",
    "last_sale_price",
    "last_sale_date",
    "square_feet",
    "year_built",
    "bedrooms",
    "bathrooms",
    "lot_size",
    "property_type",
    "county",
    "parcel_number",
)

@dataclass(frozen=True)
class AddressIdentity:
    street: str
    city: str = ""
    state: str = ""
    zip_code: str = ""

    @property
    def key(self) -> str:
        """Case/whitespace-insensitive identity used as the cache key."""
        return "|".join(
            normalize_address(part) for part in (self.street, self.city, self.state, self.zip_code)
        )

    @classmethod
    def parse(cls, raw: str) -> "AddressIdentity":
        """
        Split "123 Main St, Springfield, IL 62704" into components.
        Missing trailing parts come back as empty strings.
        """
        parts = [p.strip() for p in raw.split(",")]
        street = parts[0] if parts else ""
        city = parts[1] if len(parts) > 1 else ""
        state_zip = parts[2].split() if len(parts) > 2 else []
        state = state_zip[0] if state_zip else ""
        zip_code = state_zip[1] if len(state_zip) > 1 else ""
        return cls(street=street, city=city, state=state, zip_code=zip_code)

@dataclass
class PropertyRecord:
    """Canonical property record. None means "not known", never zero."""
    street: str
    city: str
    state: str
    zip_code: str
    data_source: DataSource
    assessed_value: Optional[float] = None
    market_value_estimate: Optional[float] = None
    last_sale_price: Optional[float] = None
    last_sale_date: Optional[str] = None      # ISO yyyy-mm-dd
    square_feet: Optional[float] = None
    year_built: Optional[int] = None
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    lot_size: Optional[float] = None
    property_type: Optional[str] = None
    county: Optional[str] = None
    parcel_number: Optional[str] = None
    tax_year: Optional[int] = None
    # Extended, provider-dependent
    owner: Optional[Any] = None
    hoa: Optional[Any] = None
    features: Optional[Any] = None
    rent_estimate: Optional[float] = None
    tax_assessment_history: Optional[Any] = None
    sale_history: Optional[Any] = None
    acquisition_error: Optional[str] = None

    @property
    def identity(self) -> AddressIdentity:
        return AddressIdentity(self.street, self.city, self.state, self.zip_code)

    @classmethod
    def from_partial(cls, identity: AddressIdentity, partial: "PartialRecord") -> "PropertyRecord":
        return cls(
            street=identity.street,
            city=identity.city,
            state=identity.state,
            zip_code=identity.zip_code,
            data_source=partial.source,
            **{k: v for k, v in partial.values.items() if k in RECORD_VALUE_FIELDS},
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PropertyRecord":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["data_source"] = DataSource(kwargs.get("data_source", DataSource.SYNTHETIC))
        for name in ("street", "city", "state", "zip_code"):
            kwargs.setdefault(name, "")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["data_source"] = self.data_source.value
        return out

RECORD_VALUE_FIELDS = frozenset(
    f.name for f in fields(PropertyRecord)
    if f.name not in ("street", "city", "state", "zip_code", "data_source", "acquisition_error")
)

@dataclass
class PartialRecord:
    """What one adapter could extract, plus the canonical fields it could not find."""
    source: DataSource
    values: Dict[str, Any] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(self.values.get(name) is not None for name in CORE_FIELDS)

    @classmethod
    def empty(cls, source: DataSource) -> "PartialRecord":
        return cls(source=source, values={}, missing=list(CORE_FIELDS))

@dataclass
class AdapterError:
    """Transient provider failure (network or non-2xx). Returned, never raised."""
    source: DataSource
    message: str
    status: Optional[int] = None
    body: str = ""

    def describe(self) -> str:
        return self.message

ProviderOutcome = Union[PartialRecord, AdapterError]

# ----- Protocols (interfaces) -----

class PropertyProvider(Protocol):
    source: DataSource

    @property
    def configured(self) -> bool: ...

    async def resolve(self, identity: AddressIdentity) -> ProviderOutcome: ...
