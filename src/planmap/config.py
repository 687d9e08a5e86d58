"""Configuration management using Pydantic settings."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Editor settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "PLANMAP"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Initial map view. The fallback center is used when no postcode is
    # given or the lookup fails.
    fallback_center_lat: float = 51.505
    fallback_center_lng: float = -0.09
    fallback_zoom: int = 13
    postcode_zoom: int = 15
    max_zoom: int = 20

    # Overlay placement: half-span in degrees at the reference zoom.
    overlay_base_span: float = 0.005
    overlay_reference_zoom: int = 15

    # Base tile layers
    road_tile_url: str = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
    road_attribution: str = "&copy; OpenStreetMap contributors"
    aerial_tile_url: str = (
        "https://server.arcgisonline.com/ArcGIS/rest/services/"
        "World_Imagery/MapServer/tile/{z}/{y}/{x}"
    )
    aerial_attribution: str = "&copy; Esri &mdash; Source: Esri and the GIS User Community"
    default_base_layer: str = "road"

    # Capabilities loaded when a map is mounted ("module:Class" specs).
    capabilities: list[str] = [
        "planmap.plugins.builtin.toolbar:ToolbarCapability",
        "planmap.plugins.builtin.distortable:DistortableImageCapability",
        "planmap.plugins.builtin.draw:DrawToolsCapability",
    ]

    # Postcode geocoding (Nominatim)
    geocoder_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "PLANMAP/0.1.0"
    geocoder_country_codes: str = "gb"
    geocoder_timeout: float = 10.0
    geo_cache_dir: str = "~/.cache/planmap"

    # Where export_annotations() writes .geojson files. Unset: event only.
    export_dir: Optional[Path] = None


settings = Settings()
