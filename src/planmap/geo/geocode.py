"""Postcode geocoding via Nominatim (OpenStreetMap).

Results are cached on disk. Nominatim requires a User-Agent header and
allows 1 request/second. Lookup failures return None; the map host then
falls back to its default center.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import httpx
from loguru import logger

from planmap.config import settings
from planmap.geo.geometry import GeoPoint


class Geocoder:
    """Resolve a postcode (or any free-text address) to a GeoPoint."""

    def __init__(
        self,
        url: str | None = None,
        user_agent: str | None = None,
        country_codes: str | None = None,
        cache_dir: str | Path | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url or settings.geocoder_url
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.country_codes = (
            settings.geocoder_country_codes if country_codes is None else country_codes
        )
        base = Path(cache_dir if cache_dir is not None else settings.geo_cache_dir)
        self.cache_dir = base.expanduser() / "geocode"
        self.timeout = timeout or settings.geocoder_timeout
        self._transport = transport

    def _cache_path(self, query: str) -> Path:
        key = hashlib.sha256(f"{self.country_codes}|{query.lower()}".encode()).hexdigest()
        return self.cache_dir / f"{key}.json"

    async def lookup(self, postcode: str) -> GeoPoint | None:
        """Geocode a postcode. Returns None when nothing is found or on error."""
        query = (postcode or "").strip()
        if not query:
            return None

        cache_path = self._cache_path(query)
        if cache_path.exists():
            try:
                data = json.loads(cache_path.read_text())
                return GeoPoint(data["lat"], data["lng"])
            except (ValueError, KeyError, OSError):
                pass  # Cache corrupt, re-fetch

        params = {"q": query, "format": "json", "limit": 1}
        if self.country_codes:
            params["countrycodes"] = self.country_codes

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                resp = await client.get(
                    self.url,
                    params=params,
                    headers={"User-Agent": self.user_agent},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                results = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Geocoding failed for {query!r}: {e}")
                return None

        if not results:
            logger.info(f"Geocoding: no match for {query!r}")
            return None

        hit = results[0]
        try:
            point = GeoPoint(float(hit["lat"]), float(hit["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Geocoding returned malformed result for {query!r}: {e}")
            return None

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(json.dumps({"lat": point.latitude, "lng": point.longitude}))
        except OSError:
            pass

        logger.info(f"Geocoded {query!r} -> {point.latitude:.4f}, {point.longitude:.4f}")
        return point
