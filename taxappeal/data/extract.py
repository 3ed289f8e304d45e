"""
Field extraction over loosely-shaped provider payloads.

Every canonical field is described by a FieldSpec and resolved with the same
first-present-wins policy:

  1. the primary flat name,
  2. the alias names, in declared order,
  3. the newest entry of each history container (assessments keyed by year,
     sales keyed by date), read with the entry alias list.

Names may be dotted ("building.rooms.beds") to walk nested objects.
"""
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from ..core.utils import parse_date, to_number

YEAR = "year"
DATE = "date"

@dataclass(frozen=True)
class FieldSpec:
    names: Tuple[str, ...]                      # primary first, then aliases
    containers: Tuple[str, ...] = ()
    key_kind: str = YEAR                        # how container keys are ordered
    entry_names: Tuple[str, ...] = ()           # defaults to `names`
    key_fallback: bool = False                  # use the container key itself as the value
    coerce: Optional[Callable[[Any], Any]] = None

def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (dict, list)) and not value:
        return False
    return True

def dig(payload: Any, path: str) -> Any:
    node = payload
    for part in path.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node

def first_present(payload: Any, names: Sequence[str], coerce: Optional[Callable[[Any], Any]] = None) -> Any:
    """Value of the first name that is present (and survives coercion)."""
    for name in names:
        value = dig(payload, name)
        if coerce is not None and is_present(value):
            value = coerce(value)
        if is_present(value):
            return value
    return None

def _order_key(raw: Any, key_kind: str):
    if key_kind == YEAR:
        number = to_number(raw)
        return int(number) if number is not None else None
    return parse_date(raw)

def latest_entry(container: Any, key_kind: str = YEAR) -> Optional[Tuple[Any, Mapping]]:
    """
    Newest (key, entry) of a history container.

    Mappings are ordered by their keys (numeric year or parsed date). Lists are
    ordered by each entry's own "year"/"date" field; a list without such fields
    is assumed newest-first. Unparseable keys are ignored.
    """
    if isinstance(container, Mapping):
        candidates = []
        for key, entry in container.items():
            order = _order_key(key, key_kind)
            if order is None or not isinstance(entry, Mapping):
                continue
            candidates.append((order, key, entry))
        if not candidates:
            return None
        _, key, entry = max(candidates, key=lambda c: c[0])
        return key, entry

    if isinstance(container, list):
        entries = [e for e in container if isinstance(e, Mapping)]
        if not entries:
            return None
        dated = [(_order_key(e.get(key_kind), key_kind), e) for e in entries]
        dated = [(order, e) for order, e in dated if order is not None]
        if dated:
            order, entry = max(dated, key=lambda d: d[0])
            return entry.get(key_kind), entry
        return None, entries[0]

    return None

def resolve_field(payload: Any, spec: FieldSpec) -> Any:
    value = first_present(payload, spec.names, spec.coerce)
    if value is not None:
        return value

    entry_names = spec.entry_names or spec.names
    for container_name in spec.containers:
        found = latest_entry(dig(payload, container_name), spec.key_kind)
        if found is None:
            continue
        key, entry = found
        value = first_present(entry, entry_names, spec.coerce)
        if value is None and spec.key_fallback and is_present(key):
            value = spec.coerce(key) if spec.coerce else key
        if is_present(value):
            return value
    return None

def iso_date(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None

def text(value: Any) -> Optional[str]:
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value).strip() or None
    return None

def integer(value: Any) -> Optional[int]:
    number = to_number(value)
    return int(number) if number is not None else None

# ----- Shared field specs -----

ASSESSED_VALUE = FieldSpec(
    names=("assessedValue", "taxAssessedValue", "assessmentTotal", "assessment"),
    containers=("taxAssessments", "taxHistory"),
    key_kind=YEAR,
    entry_names=("value", "totalValue", "assessedValue", "total"),
    coerce=to_number,
)

LAST_SALE_PRICE = FieldSpec(
    names=("lastSalePrice", "lastSoldPrice"),
    containers=("saleHistory", "history"),
    key_kind=DATE,
    entry_names=("price", "amount"),
    coerce=to_number,
)

LAST_SALE_DATE = FieldSpec(
    names=("lastSaleDate", "lastSoldDate"),
    containers=("saleHistory", "history"),
    key_kind=DATE,
    entry_names=("date",),
    key_fallback=True,
    coerce=iso_date,
)

def extract(payload: Any, specs: Mapping[str, FieldSpec]) -> Tuple[dict, list]:
    """Resolve every spec; returns (found values, names of missing fields)."""
    values, missing = {}, []
    for name, spec in specs.items():
        value = resolve_field(payload, spec)
        if value is None:
            missing.append(name)
        else:
            values[name] = value
    return values, missing
