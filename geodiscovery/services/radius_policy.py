from typing import Dict, Iterable, Optional

from geodiscovery.core.config import settings

# 0 means "no distance limit" everywhere in the policy
UNLIMITED = 0.0

ALL_CATEGORIES = "all"


class RadiusPolicy:
    """
    Maximum search distance per (category, country).

    Categories fall back to the "all" default when unmapped. Countries in the
    unlimited set (small Caribbean islands and Suriname) never get a limit:
    fixed kilometre radii make no sense there.
    """

    def __init__(
        self,
        category_radius_km: Optional[Dict[str, float]] = None,
        unlimited_countries: Optional[Iterable[str]] = None,
    ):
        table = category_radius_km if category_radius_km is not None else settings.CATEGORY_RADIUS_KM
        self.category_radius_km = {k.upper(): float(v) for k, v in table.items()}
        self.default_radius_km = self.category_radius_km.get(ALL_CATEGORIES.upper(), UNLIMITED)
        countries = unlimited_countries if unlimited_countries is not None else settings.UNLIMITED_RADIUS_COUNTRIES
        self.unlimited_countries = frozenset(c.upper() for c in countries)

    def max_radius_km(self, category: Optional[str], country_code: Optional[str]) -> float:
        if country_code and country_code.strip().upper() in self.unlimited_countries:
            return UNLIMITED
        category = (category or "").strip()
        if not category or category.lower() == ALL_CATEGORIES:
            return self.default_radius_km
        return self.category_radius_km.get(category.upper(), self.default_radius_km)

    @staticmethod
    def radius_label(radius_km: float) -> str:
        """Human label for a radius, as shown next to the distance slider."""
        if radius_km == UNLIMITED:
            return "Wereldwijd"
        if radius_km <= 10:
            return "Lokaal"
        if radius_km <= 50:
            return "Regionaal"
        if radius_km <= 200:
            return "Nationaal"
        return "Wereldwijd"
