"""Editor session API.

One EditorSession per map the front end has open. The front end mirrors
session state (``GET /api/sessions/{id}``) and sends user actions as the
requests below; the engine decides what is accepted in the current mode.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field

from planmap.attributes import Vocabulary
from planmap.geo.geometry import GeoPoint
from planmap.session import EditorSession
from planmap.shapes.exporters.geojson import shape_to_feature

router = APIRouter(prefix="/api/sessions", tags=["editor"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CreateSessionRequest(BaseModel):
    """Open a new map editor."""
    postcode: Optional[str] = None
    image_url: Optional[str] = None
    vocabulary: dict[str, list[str]] = Field(default_factory=dict)


class SetImageRequest(BaseModel):
    url: str
    corners: Optional[list[list[float]]] = None  # [[lng, lat] x4] NW, NE, SE, SW


class ModeRequest(BaseModel):
    mode: str


class BaseLayerRequest(BaseModel):
    name: str


class LockRequest(BaseModel):
    locked: bool


class TransformRequest(BaseModel):
    operation: str
    params: dict[str, Any] = Field(default_factory=dict)


class DrawKindRequest(BaseModel):
    kind: str


class VertexRequest(BaseModel):
    lng: float
    lat: float


class DrawShapeRequest(BaseModel):
    kind: str
    coordinates: list[list[float]]  # [[lng, lat], ...]
    radius: Optional[float] = None


class VerticesRequest(BaseModel):
    coordinates: list[list[float]]


class FormFieldRequest(BaseModel):
    field: str
    value: Optional[Any] = None


class ImportRequest(BaseModel):
    document: dict


class PlacementRequest(BaseModel):
    name: str = ""
    floor_level: str = "ground-floor"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sessions(request: Request) -> dict[str, EditorSession]:
    if not hasattr(request.app.state, "sessions"):
        request.app.state.sessions = {}
    return request.app.state.sessions


def _get_session(session_id: str, request: Request) -> EditorSession:
    session = _sessions(request).get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def _points(coordinates: list[list[float]]) -> list[GeoPoint]:
    try:
        return [GeoPoint.from_lnglat(c) for c in coordinates]
    except (IndexError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Bad coordinates: {e}")


def _shape_response(session: EditorSession, shape) -> dict:
    return {
        "shape": shape_to_feature(shape) if shape is not None else None,
        "state": session.state(),
    }


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
async def create_session(body: CreateSessionRequest, request: Request):
    """Create a session and mount its map."""
    session = EditorSession(
        vocabulary=Vocabulary(body.vocabulary),
        geocoder=getattr(request.app.state, "geocoder", None),
        image_loader=getattr(request.app.state, "image_loader", None),
    )
    if body.image_url:
        await session.set_image(body.image_url)
    await session.mount(postcode=body.postcode)
    _sessions(request)[session.session_id] = session
    logger.info(f"Session created: {session.session_id}")
    return session.state()


@router.get("")
async def list_sessions(request: Request):
    return [s.state() for s in _sessions(request).values()]


@router.get("/{session_id}")
async def get_session(session_id: str, request: Request):
    return _get_session(session_id, request).state()


@router.delete("/{session_id}")
async def delete_session(session_id: str, request: Request):
    session = _get_session(session_id, request)
    session.unmount()
    del _sessions(request)[session_id]
    return {"deleted": session_id}


# ---------------------------------------------------------------------------
# Map, image and mode
# ---------------------------------------------------------------------------

@router.put("/{session_id}/image")
async def set_image(session_id: str, body: SetImageRequest, request: Request):
    session = _get_session(session_id, request)
    corners = None
    if body.corners is not None:
        corners = _points(body.corners)
        if len(corners) != 4:
            raise HTTPException(status_code=422, detail="An image needs exactly 4 corners")
    overlay = await session.set_image(body.url, corners)
    return {
        "placed": overlay is not None,
        "queued": not session.ready,
        "state": session.state(),
    }


@router.put("/{session_id}/mode")
async def set_mode(session_id: str, body: ModeRequest, request: Request):
    session = _get_session(session_id, request)
    try:
        changed = session.set_mode(body.mode)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown mode: {body.mode}")
    return {"changed": changed, "state": session.state()}


@router.put("/{session_id}/base-layer")
async def set_base_layer(session_id: str, body: BaseLayerRequest, request: Request):
    session = _get_session(session_id, request)
    try:
        changed = session.set_base_layer(body.name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"changed": changed, "state": session.state()}


# ---------------------------------------------------------------------------
# Overlay
# ---------------------------------------------------------------------------

@router.post("/{session_id}/overlay/select")
async def select_overlay(session_id: str, request: Request):
    session = _get_session(session_id, request)
    return {"applied": session.overlays.select(), "state": session.state()}


@router.post("/{session_id}/overlay/deselect")
async def deselect_overlay(session_id: str, request: Request):
    session = _get_session(session_id, request)
    return {"applied": session.overlays.deselect(), "state": session.state()}


@router.post("/{session_id}/overlay/lock")
async def lock_overlay(session_id: str, body: LockRequest, request: Request):
    session = _get_session(session_id, request)
    return {"applied": session.overlays.set_lock(body.locked), "state": session.state()}


@router.post("/{session_id}/overlay/transform")
async def transform_overlay(session_id: str, body: TransformRequest, request: Request):
    session = _get_session(session_id, request)
    params = dict(body.params)
    if "point" in params:
        params["point"] = _points([params["point"]])[0]
    try:
        applied = session.transform_overlay(body.operation, **params)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"applied": applied, "state": session.state()}


# ---------------------------------------------------------------------------
# Drawing
# ---------------------------------------------------------------------------

@router.post("/{session_id}/draw/begin")
async def begin_drawing(session_id: str, body: DrawKindRequest, request: Request):
    session = _get_session(session_id, request)
    try:
        accepted = session.begin_drawing(body.kind)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"accepted": accepted, "state": session.state()}


@router.post("/{session_id}/draw/vertex")
async def add_vertex(session_id: str, body: VertexRequest, request: Request):
    session = _get_session(session_id, request)
    result = session.add_vertex(GeoPoint(body.lat, body.lng))
    if result is True or result is False or result is None:
        return {"accepted": bool(result), "shape": None, "state": session.state()}
    return {"accepted": True, **_shape_response(session, result)}


@router.post("/{session_id}/draw/finish")
async def finish_drawing(session_id: str, request: Request):
    session = _get_session(session_id, request)
    return _shape_response(session, session.finish_drawing())


@router.post("/{session_id}/draw/cancel")
async def cancel_drawing(session_id: str, request: Request):
    session = _get_session(session_id, request)
    session.cancel_drawing()
    return session.state()


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------

@router.get("/{session_id}/shapes")
async def list_shapes(session_id: str, request: Request):
    return _get_session(session_id, request).store.export_all()


@router.post("/{session_id}/shapes")
async def draw_shape(session_id: str, body: DrawShapeRequest, request: Request):
    """Draw a complete shape in one request (annotate mode only)."""
    session = _get_session(session_id, request)
    try:
        shape = session.draw_shape(body.kind, _points(body.coordinates), body.radius)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _shape_response(session, shape)


@router.delete("/{session_id}/shapes")
async def clear_shapes(session_id: str, request: Request):
    session = _get_session(session_id, request)
    return {"removed": session.clear_shapes()}


@router.put("/{session_id}/shapes/{shape_id}/vertices")
async def edit_vertices(session_id: str, shape_id: str, body: VerticesRequest, request: Request):
    session = _get_session(session_id, request)
    try:
        shape = session.edit_vertices(shape_id, _points(body.coordinates))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Shape '{shape_id}' not found")
    return _shape_response(session, shape)


@router.delete("/{session_id}/shapes/{shape_id}")
async def delete_shape(session_id: str, shape_id: str, request: Request):
    session = _get_session(session_id, request)
    try:
        deleted = session.delete_shape(shape_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Shape '{shape_id}' not found")
    return {"deleted": deleted}


@router.post("/{session_id}/shapes/{shape_id}/edit")
async def request_edit(session_id: str, shape_id: str, request: Request):
    """The info popup's Edit button."""
    session = _get_session(session_id, request)
    try:
        session.request_edit(shape_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Shape '{shape_id}' not found")
    return session.attributes.pending.to_dict()


# ---------------------------------------------------------------------------
# Attribute form
# ---------------------------------------------------------------------------

@router.get("/{session_id}/form")
async def get_form(session_id: str, request: Request):
    session = _get_session(session_id, request)
    pending = session.attributes.pending
    return {
        "form": pending.to_dict() if pending else None,
        "vocabulary": session.attributes.vocabulary.to_dict(),
    }


@router.patch("/{session_id}/form")
async def set_form_field(session_id: str, body: FormFieldRequest, request: Request):
    session = _get_session(session_id, request)
    if session.attributes.pending is None:
        raise HTTPException(status_code=409, detail="No attribute form is open")
    try:
        accepted = session.attributes.set_field(body.field, body.value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"accepted": accepted, "form": session.attributes.pending.to_dict()}


@router.post("/{session_id}/form/save")
async def save_form(session_id: str, request: Request):
    session = _get_session(session_id, request)
    pending = session.attributes.pending
    if pending is None:
        raise HTTPException(status_code=409, detail="No attribute form is open")
    shape = session.attributes.save()
    if shape is None:
        form = session.attributes.pending
        raise HTTPException(
            status_code=422,
            detail={"errors": form.errors if form else {}, "form": form.to_dict() if form else None},
        )
    return _shape_response(session, shape)


@router.post("/{session_id}/form/cancel")
async def cancel_form(session_id: str, request: Request):
    session = _get_session(session_id, request)
    return {"cancelled": session.attributes.cancel()}


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------

@router.post("/{session_id}/export")
async def export_annotations(session_id: str, request: Request):
    session = _get_session(session_id, request)
    session.export_annotations()
    return session.last_export


@router.post("/{session_id}/import")
async def import_annotations(session_id: str, body: ImportRequest, request: Request):
    session = _get_session(session_id, request)
    added = session.import_annotations(body.document)
    return {"imported": [s.shape_id for s in added]}


@router.get("/{session_id}/annotated")
async def has_annotated_shapes(session_id: str, request: Request):
    session = _get_session(session_id, request)
    return {"annotated": session.has_annotated_shapes()}


# ---------------------------------------------------------------------------
# Placements
# ---------------------------------------------------------------------------

@router.post("/{session_id}/placements", status_code=201)
async def save_placement(session_id: str, body: PlacementRequest, request: Request):
    session = _get_session(session_id, request)
    try:
        snapshot = session.save_placement(body.name, body.floor_level)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if snapshot is None:
        raise HTTPException(status_code=409, detail="No image is placed")
    return snapshot.to_dict()


@router.get("/{session_id}/placements")
async def list_placements(session_id: str, request: Request):
    session = _get_session(session_id, request)
    return [p.to_dict() for p in session.list_placements()]


@router.post("/{session_id}/placements/{placement_id}/load")
async def load_placement(session_id: str, placement_id: str, request: Request):
    session = _get_session(session_id, request)
    try:
        loaded = await session.load_placement(placement_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Placement '{placement_id}' not found")
    return {"loaded": loaded, "state": session.state()}
