from .base import AddressIdentity, DataSource, PartialRecord
from ..core.utils import char_code_hash, normalize_address

def synthesize(identity: AddressIdentity) -> PartialRecord:
    """
    Deterministic stand-in record derived from the address alone.
    Same street + city, same record, with or without network and regardless
    of the current date.
    """
    h = char_code_hash(normalize_address(identity.street) + normalize_address(identity.city))

    base_value = 200_000 + (h * 1000) % 800_000
    if h % 5 == 0:
        property_type = "Condo"
    elif h % 7 == 0:
        property_type = "Townhouse"
    else:
        property_type = "Single Family"
    city = " ".join(identity.city.split()).title()

    values = {
        "assessed_value": round(base_value * 1.15),  # typically assessed high
        "market_value_estimate": base_value,
        "last_sale_price": round(base_value * 0.85),
        "last_sale_date": f"{2020 + h % 4}-{h % 12 + 1:02d}-15",
        "square_feet": 1200 + h % 3000,
        "year_built": 1950 + h % 70,
        "bedrooms": 2 + h % 4,
        "bathrooms": 1 + h % 3 + 0.5 * (h % 2),
        "lot_size": 5000 + h % 15_000,
        "property_type": property_type,
        "county": f"{city} County" if city else None,
        "parcel_number": f"{identity.zip_code.strip()}-{h % 10_000:04d}-{h % 100:02d}",
    }
    missing = [name for name, value in values.items() if value is None]
    values = {name: value for name, value in values.items() if value is not None}
    return PartialRecord(source=DataSource.SYNTHETIC, values=values, missing=missing)
