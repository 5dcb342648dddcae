# Discovery pipeline: annotate candidates with distance, apply structured,
# radius and free-text filters, then rank. One code path serves both
# listings and people; `SearchQuery.entity_kind` selects the predicates.

import unicodedata
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence, Union

import structlog

from geodiscovery.core.config import settings
from geodiscovery.models.dto import (
    DEFAULT_SORT,
    SORT_KEY_ALIASES,
    EntityKind,
    Listing,
    Person,
    SearchQuery,
    SortKey,
)
from geodiscovery.services.radius_policy import UNLIMITED, RadiusPolicy
from geodiscovery.utils.haversine import annotate

logger = structlog.get_logger(__name__)

CandidateRecord = Union[Listing, Person]

ADMIN_ROLE = "ADMIN"
DELIVERY_ROLE = "DELIVERY"
ANY = "all"

LISTING_SORTS = frozenset({
    SortKey.PRICE_LOW, SortKey.PRICE_HIGH, SortKey.DISTANCE,
    SortKey.NEWEST, SortKey.OLDEST, SortKey.POPULAR,
})
PERSON_SORTS = frozenset({
    SortKey.DISTANCE, SortKey.NAME, SortKey.FOLLOWERS, SortKey.PRODUCTS,
    SortKey.NEWEST, SortKey.OLDEST,
})

# --- Small helpers ---

def _is_set(value: Optional[str]) -> bool:
    return bool(value and value.strip()) and value.strip().lower() != ANY

def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()

def _name_tokens(name: Optional[str]) -> List[str]:
    return (name or "").lower().split()

def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC so mixed inputs stay comparable
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

def collation_key(value: Optional[str]) -> tuple:
    """Accent- and case-insensitive ordering key, e.g. "Émile" sorts with "emile"."""
    text = unicodedata.normalize("NFKD", value or "")
    base = "".join(c for c in text if not unicodedata.combining(c))
    return (base.casefold(), text.casefold(), text)

def resolve_sort_key(raw: Optional[str], kind: EntityKind) -> SortKey:
    """Map a requested sort key to one valid for `kind`, falling back to the kind's default."""
    allowed = LISTING_SORTS if kind == EntityKind.LISTING else PERSON_SORTS
    if raw:
        key = raw.strip().lower()
        candidate = SORT_KEY_ALIASES.get(key)
        if candidate is None:
            try:
                candidate = SortKey(key)
            except ValueError:
                candidate = None
        if candidate in allowed:
            return candidate
    return DEFAULT_SORT[kind]

def _sort_nulls_last(
    items: Sequence[CandidateRecord],
    value: Callable[[CandidateRecord], object],
    descending: bool = False,
) -> List[CandidateRecord]:
    present = [c for c in items if value(c) is not None]
    missing = [c for c in items if value(c) is None]
    # list.sort is stable with reverse=True as well
    present.sort(key=value, reverse=descending)
    return present + missing

def _created(c: CandidateRecord) -> Optional[datetime]:
    return _as_utc(c.created_at) if c.created_at is not None else None

def _display_name(c: CandidateRecord) -> Optional[str]:
    if isinstance(c, Person):
        return c.name or None
    return c.title or None

# --- Pipeline ---

class DiscoveryPipeline:
    """
    Filter and rank candidates for one search query.

    Pure and synchronous: no I/O, inputs are never mutated, and a candidate
    with missing optional data only fails the predicate that needs that data.
    """

    def __init__(self, policy: Optional[RadiusPolicy] = None, default_country_code: Optional[str] = None):
        self.policy = policy or RadiusPolicy()
        self.default_country_code = default_country_code or settings.DEFAULT_COUNTRY_CODE

    def discover(self, candidates: Iterable[CandidateRecord], query: SearchQuery) -> List[CandidateRecord]:
        kind_type = Listing if query.entity_kind == EntityKind.LISTING else Person
        pool = [c for c in candidates if isinstance(c, kind_type)]

        # 1. Distance annotation against the single reference location
        reference = query.reference_location.coordinate
        annotated = [annotate(c, reference) for c in pool]

        limit = self.radius_limit_km(query)
        term = (query.term or "").strip().lower()
        location_term = (query.free_text_location or "").strip().lower()

        kept = [
            c for c in annotated
            if self._passes_structured(c, query)
            and self._within_radius(c, limit, reference is not None)
            and self._matches_term(c, term)
            and self._matches_location(c, location_term)
        ]

        sort_key = resolve_sort_key(query.sort_key, query.entity_kind)
        results = self.sort(kept, sort_key, query.entity_kind, reference_active=reference is not None)

        logger.info(
            "discovery_completed",
            entity_kind=query.entity_kind.value,
            sort_key=sort_key.value,
            radius_km=limit,
            location_source=query.reference_location.source.value,
            **self.summarize(pool, results),
        )
        return results

    def radius_limit_km(self, query: SearchQuery) -> float:
        if query.radius_km is not None:
            return query.radius_km
        return self.policy.max_radius_km(query.category, query.country_code or self.default_country_code)

    @staticmethod
    def summarize(pool: Sequence[CandidateRecord], results: Sequence[CandidateRecord]) -> dict:
        return {
            "total": len(pool),
            "after_filters": len(results),
            "with_distance": sum(1 for c in results if c.distance_km is not None),
        }

    # --- Structured filters (AND) ---

    def _passes_structured(self, c: CandidateRecord, query: SearchQuery) -> bool:
        if isinstance(c, Listing):
            return self._listing_filters(c, query)
        return self._person_filters(c, query)

    @staticmethod
    def _listing_filters(c: Listing, query: SearchQuery) -> bool:
        if _is_set(query.category) and (c.category or "").lower() != query.category.strip().lower():
            return False
        if _is_set(query.subcategory) and (c.subcategory or "").strip() != query.subcategory.strip():
            return False
        if query.price_min is not None and c.price_cents < query.price_min:
            return False
        if query.price_max is not None and c.price_cents > query.price_max:
            return False
        # Advisory until every listing carries a delivery mode: unknown modes pass
        if _is_set(query.delivery_mode) and c.delivery_mode:
            wanted = query.delivery_mode.strip().upper()
            offered = c.delivery_mode.strip().upper()
            if offered not in (wanted, "BOTH"):
                return False
        if _is_set(query.region) and c.tags:
            region = query.region.strip().lower()
            if not any(region in tag.lower() or tag.lower() in region for tag in c.tags if tag):
                return False
        return True

    @staticmethod
    def _person_filters(c: Person, query: SearchQuery) -> bool:
        if (c.role or "").upper() == ADMIN_ROLE:
            return False
        if _is_set(query.role_filter):
            role = query.role_filter.strip().upper()
            roles = c.buyer_roles if role == DELIVERY_ROLE else c.seller_roles
            if role not in {r.upper() for r in roles if r}:
                return False
        return True

    # --- Radius ---

    @staticmethod
    def _within_radius(c: CandidateRecord, limit: float, reference_active: bool) -> bool:
        if limit == UNLIMITED or not reference_active or c.distance_km is None:
            return True
        return c.distance_km <= limit

    # --- Free text (OR across fields) ---

    @staticmethod
    def _matches_term(c: CandidateRecord, term: str) -> bool:
        if not term:
            return True
        if isinstance(c, Listing):
            if (_contains(c.title, term) or _contains(c.description, term)
                    or _contains(c.seller_name, term) or _contains(c.seller_username, term)
                    or _contains(c.place, term) or _contains(c.city, term)):
                return True
            return any(term in part or part in term for part in _name_tokens(c.seller_name))

        if _contains(c.username, term) or _contains(c.name, term):
            return True
        # first, middle and last names separately
        if any(term in part or part.startswith(term) for part in _name_tokens(c.name)):
            return True
        return _contains(c.bio, term) or _contains(c.place, term) or _contains(c.city, term)

    @staticmethod
    def _matches_location(c: CandidateRecord, location_term: str) -> bool:
        if not location_term:
            return True
        if isinstance(c, Listing):
            fields = f"{c.title or ''} {c.description or ''} {c.place or ''}"
        else:
            fields = f"{c.name or ''} {c.username or ''} {c.place or ''}"
        return location_term in fields.lower()

    # --- Ranking ---

    def sort(
        self,
        items: Sequence[CandidateRecord],
        key: SortKey,
        kind: EntityKind,
        reference_active: bool,
    ) -> List[CandidateRecord]:
        items = list(items)
        if key == SortKey.PRICE_LOW:
            return _sort_nulls_last(items, lambda c: getattr(c, "price_cents", None))
        if key == SortKey.PRICE_HIGH:
            return _sort_nulls_last(items, lambda c: getattr(c, "price_cents", None), descending=True)
        if key == SortKey.NEWEST:
            return _sort_nulls_last(items, _created, descending=True)
        if key == SortKey.OLDEST:
            return _sort_nulls_last(items, _created)
        if key == SortKey.NAME:
            return self._by_name(items)
        if key == SortKey.FOLLOWERS:
            return sorted(items, key=lambda c: c.follower_count or 0, reverse=True)
        if key == SortKey.PRODUCTS:
            return sorted(items, key=lambda c: c.product_count or 0, reverse=True)
        if key == SortKey.POPULAR:
            newest_first = _sort_nulls_last(items, _created, descending=True)
            return sorted(
                newest_first,
                key=lambda c: (c.view_count or 0) + 2 * (c.favorite_count or 0),
                reverse=True,
            )
        if key == SortKey.DISTANCE:
            return self._by_distance(items, kind, reference_active)
        return self.sort(items, DEFAULT_SORT[kind], kind, reference_active)

    @staticmethod
    def _by_name(items: Sequence[CandidateRecord]) -> List[CandidateRecord]:
        return _sort_nulls_last(
            items,
            lambda c: collation_key(_display_name(c)) if _display_name(c) else None,
        )

    def _by_distance(
        self,
        items: Sequence[CandidateRecord],
        kind: EntityKind,
        reference_active: bool,
    ) -> List[CandidateRecord]:
        known = sorted((c for c in items if c.distance_km is not None), key=lambda c: c.distance_km)
        unknown = [c for c in items if c.distance_km is None]
        if reference_active:
            return known + unknown
        # Without a reference nothing has a distance: unknowns lead, ordered by the kind's fallback
        fallback = SortKey.NEWEST if kind == EntityKind.LISTING else SortKey.NAME
        return self.sort(unknown, fallback, kind, reference_active) + known
