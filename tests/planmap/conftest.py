"""Shared fixtures for engine tests."""

from __future__ import annotations

import asyncio

import pytest

from planmap.errors import OverlayLoadFailure
from planmap.geo.geometry import GeoPoint
from planmap.host import MapHost
from planmap.overlay import ImageLoader
from planmap.plugins.manager import CapabilityManager
from planmap.session import EditorSession


class FailingLoader(ImageLoader):
    """Image loader whose asset never loads."""

    async def load(self, url: str) -> None:
        raise OverlayLoadFailure(f"404 for {url}")


class GatedLoader(ImageLoader):
    """Image loader that waits until the test releases each URL."""

    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}

    async def load(self, url: str) -> None:
        gate = self.gates.setdefault(url, asyncio.Event())
        await gate.wait()

    def release(self, url: str) -> None:
        self.gates.setdefault(url, asyncio.Event()).set()


class FixedGeocoder:
    """Geocoder stub resolving every postcode to one point."""

    def __init__(self, point: GeoPoint | None) -> None:
        self.point = point
        self.queries: list[str] = []

    async def lookup(self, postcode: str) -> GeoPoint | None:
        self.queries.append(postcode)
        await asyncio.sleep(0)
        return self.point


@pytest.fixture
def mounted_host():
    host = MapHost(capabilities=CapabilityManager())
    asyncio.run(host.mount("map"))
    return host


@pytest.fixture
def session():
    """A mounted editor session centered on Trafalgar Square at zoom 15."""
    s = EditorSession(geocoder=FixedGeocoder(GeoPoint(51.5072, -0.1276)))
    asyncio.run(s.mount("map", postcode="WC2N 5DN"))
    yield s
    s.unmount()


@pytest.fixture
def failing_loader():
    return FailingLoader()


@pytest.fixture
def gated_loader():
    return GatedLoader()


@pytest.fixture
def geocoder_factory():
    return FixedGeocoder
