"""Capability API.

Lists the capabilities loaded for a session's map, their status and
health. A capability that failed to load shows up under ``failed_specs``.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api/capabilities", tags=["capabilities"])


def _get_manager(session_id: str, request: Request):
    """Get a session's capability manager, or None."""
    sessions = getattr(request.app.state, "sessions", None) or {}
    session = sessions.get(session_id)
    return session.capabilities if session is not None else None


@router.get("/{session_id}")
async def list_capabilities(session_id: str, request: Request):
    """List all registered capabilities with status."""
    mgr = _get_manager(session_id, request)
    if mgr is None:
        return JSONResponse(status_code=404, content={"detail": f"Session '{session_id}' not found"})
    return {
        "capabilities": mgr.describe(),
        "failed_specs": dict(mgr.failed_specs),
    }


@router.get("/{session_id}/health")
async def capability_health(session_id: str, request: Request):
    """Health check for all running capabilities."""
    mgr = _get_manager(session_id, request)
    if mgr is None:
        return JSONResponse(status_code=404, content={"detail": f"Session '{session_id}' not found"})
    return mgr.health()


@router.get("/{session_id}/{plugin_id}")
async def get_capability(session_id: str, plugin_id: str, request: Request):
    """Get details for a specific capability."""
    mgr = _get_manager(session_id, request)
    if mgr is None:
        return JSONResponse(status_code=404, content={"detail": f"Session '{session_id}' not found"})

    plugin = mgr.get_plugin(plugin_id)
    if plugin is None:
        return JSONResponse(status_code=404, content={"detail": f"Capability '{plugin_id}' not found"})

    return {
        "id": plugin.plugin_id,
        "name": plugin.name,
        "version": plugin.version,
        "capabilities": sorted(plugin.capabilities),
        "dependencies": list(plugin.dependencies),
        "healthy": plugin.healthy,
    }
