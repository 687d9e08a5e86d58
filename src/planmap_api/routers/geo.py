"""Postcode lookup for the landing page and the map's initial view.

Backed by Nominatim (OpenStreetMap), no API key. Results are cached on
disk by the Geocoder.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from planmap.config import settings
from planmap.geo.geocode import Geocoder
from planmap.geo.geometry import GeoPoint, view_bounds

router = APIRouter(prefix="/api/geo", tags=["geo"])


class GeocodeResponse(BaseModel):
    """Postcode lookup result."""
    postcode: str
    lat: float
    lng: float
    zoom: int


class ViewBoundsResponse(BaseModel):
    """Where a new image would be placed for a given view."""
    south_west: list[float]  # [lng, lat]
    north_east: list[float]


def _get_geocoder(request: Request) -> Geocoder:
    geocoder = getattr(request.app.state, "geocoder", None)
    if geocoder is None:
        geocoder = Geocoder()
        request.app.state.geocoder = geocoder
    return geocoder


@router.get("/geocode", response_model=GeocodeResponse)
async def geocode(request: Request, postcode: str = Query(..., min_length=1)):
    """Resolve a postcode to the map center used at mount."""
    point = await _get_geocoder(request).lookup(postcode)
    if point is None:
        raise HTTPException(status_code=404, detail=f"Postcode not found: {postcode}")
    return GeocodeResponse(
        postcode=postcode,
        lat=point.latitude,
        lng=point.longitude,
        zoom=settings.postcode_zoom,
    )


@router.get("/view-bounds", response_model=ViewBoundsResponse)
async def get_view_bounds(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    zoom: float = Query(..., ge=0, le=24),
):
    sw, ne = view_bounds(
        GeoPoint(lat, lng),
        zoom,
        base_span=settings.overlay_base_span,
        reference_zoom=settings.overlay_reference_zoom,
    )
    return ViewBoundsResponse(south_west=sw.to_lnglat(), north_east=ne.to_lnglat())
