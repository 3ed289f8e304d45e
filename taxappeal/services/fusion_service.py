import logging
from copy import deepcopy
from typing import List, Optional, Sequence, Tuple

from ..core.cache import PropertyCache, property_cache
from ..core.errors import CacheUnavailable
from ..core.metrics import CACHE_ERRORS, PROVIDER_OUTCOMES
from ..data.attom_client import attom_client
from ..data.base import AdapterError, AddressIdentity, PropertyProvider, PropertyRecord
from ..data.rentcast_client import rentcast_client
from ..data.synthetic import synthesize

logger = logging.getLogger(__name__)

class FusionService:
    """
    Resolves an address to one canonical property record:
      memo → durable cache → providers in priority order → synthetic
    and writes the winner back through both cache layers.

    The first provider returning a non-empty record wins outright; fields are
    never mixed across providers. Adapter errors are noted on the record and
    the chain moves on. A missing or broken cache only costs latency.
    """
    def __init__(self, providers: Sequence[PropertyProvider], cache: Optional[PropertyCache] = None):
        self.providers = list(providers)
        self.cache = cache

    async def resolve(self, identity: AddressIdentity) -> Tuple[PropertyRecord, bool]:
        """Returns (record, from_cache)."""
        cached = self._read_cache(identity)
        if cached is not None:
            logger.info(
                "property served from cache",
                extra={"address_key": identity.key, "data_source": cached.data_source.value},
            )
            return deepcopy(cached), True

        record = await self._acquire(identity)
        self._write_cache(identity, record)
        return deepcopy(record), False

    async def resolve_property(self, identity: AddressIdentity) -> PropertyRecord:
        record, _ = await self.resolve(identity)
        return record

    async def _acquire(self, identity: AddressIdentity) -> PropertyRecord:
        errors: List[str] = []
        for provider in self.providers:
            name = provider.source.value
            if not provider.configured:
                PROVIDER_OUTCOMES.labels(provider=name, outcome="unconfigured").inc()
                continue

            # Strictly sequential: priority order decides, not latency.
            outcome = await provider.resolve(identity)
            if isinstance(outcome, AdapterError):
                PROVIDER_OUTCOMES.labels(provider=name, outcome="error").inc()
                logger.warning(
                    "provider failed, falling through",
                    extra={"provider": name, "status": outcome.status, "address_key": identity.key},
                )
                errors.append(outcome.describe())
                continue
            if outcome.is_empty:
                PROVIDER_OUTCOMES.labels(provider=name, outcome="empty").inc()
                logger.info("provider had no data", extra={"provider": name, "address_key": identity.key})
                continue

            PROVIDER_OUTCOMES.labels(provider=name, outcome="record").inc()
            logger.info(
                "provider record accepted",
                extra={"provider": name, "address_key": identity.key, "missing": outcome.missing},
            )
            record = PropertyRecord.from_partial(identity, outcome)
            break
        else:
            logger.info("no provider data, generating synthetic record", extra={"address_key": identity.key})
            record = PropertyRecord.from_partial(identity, synthesize(identity))

        record.acquisition_error = "; ".join(errors) or None
        return record

    def _read_cache(self, identity: AddressIdentity) -> Optional[PropertyRecord]:
        if self.cache is None:
            return None
        try:
            entry = self.cache.get(identity)
        except CacheUnavailable as exc:
            CACHE_ERRORS.labels(operation="get").inc()
            logger.error("property cache read failed, continuing without it", extra={"error": str(exc)})
            return None
        return entry.payload if entry is not None else None

    def _write_cache(self, identity: AddressIdentity, record: PropertyRecord) -> None:
        if self.cache is None:
            return
        try:
            self.cache.put(identity, deepcopy(record))
        except CacheUnavailable as exc:
            CACHE_ERRORS.labels(operation="put").inc()
            logger.error("property cache write failed, result not cached", extra={"error": str(exc)})

    # ----- Operational tooling -----

    def cache_statistics(self) -> dict:
        if self.cache is None:
            return {"total_entries": 0, "valid_entries": 0, "expired_entries": 0}
        return self.cache.statistics()

    def sweep_expired(self) -> int:
        if self.cache is None:
            return 0
        removed = self.cache.sweep_expired()
        logger.info("expired property cache entries removed", extra={"removed": removed})
        return removed

def fusion_service() -> FusionService:
    """
    Default wiring: RentCast, then ATTOM, over the configured cache.
    """
    return FusionService([rentcast_client(), attom_client()], property_cache())
