"""
Reel routes — create, read, update, delete saved reels.

Route prefix: {api_prefix}/reels

The store does blocking file I/O under a thread lock, so these handlers are
plain ``def`` and run in FastAPI's threadpool.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.dependencies import get_reel_store
from reels.store import ReelStore
from utils.errors import NotFoundError
from utils.schemas import ReelCreateRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reels"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("")
def get_reels(
    reel_id: Optional[str] = Query(None, alias="id"),
    store: ReelStore = Depends(get_reel_store),
) -> Any:
    """One reel when ``id`` is given, otherwise every reel in creation order."""
    if reel_id:
        reel = store.get(reel_id)
        if reel is None:
            return _error(status.HTTP_404_NOT_FOUND, "Reel not found")
        return reel.to_wire()
    return [r.to_wire() for r in store.list()]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_reel(
    payload: Dict[str, Any] = Body(...),
    store: ReelStore = Depends(get_reel_store),
) -> Any:
    if not isinstance(payload.get("videos"), list) or not payload["videos"]:
        return _error(status.HTTP_400_BAD_REQUEST, "Videos array is required")

    try:
        request = ReelCreateRequest.model_validate(payload)
    except ValidationError as exc:
        logger.info("Rejected reel payload: %s", exc)
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid reel data")

    reel = store.create(
        request.videos or [],
        title=request.title,
        description=request.description,
        director_info=request.director_info,
        edit_state=request.edit_state,
    )
    return reel.to_wire()


@router.put("")
def update_reel(
    query_id: Optional[str] = Query(None, alias="id"),
    payload: Optional[Dict[str, Any]] = Body(None),
    store: ReelStore = Depends(get_reel_store),
) -> Any:
    """Body is ``{id, ...updates}``; ``?id=`` is accepted when the body has none."""
    updates = dict(payload or {})
    reel_id = updates.pop("id", None) or query_id
    if not reel_id:
        return _error(status.HTTP_400_BAD_REQUEST, "Reel ID is required")
    try:
        reel = store.update(reel_id, updates)
    except NotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "Reel not found")
    except ValueError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    return reel.to_wire()


@router.delete("")
def delete_reel(
    reel_id: Optional[str] = Query(None, alias="id"),
    store: ReelStore = Depends(get_reel_store),
) -> Any:
    if not reel_id:
        return _error(status.HTTP_400_BAD_REQUEST, "Reel ID is required")
    if not store.delete(reel_id):
        return _error(status.HTTP_404_NOT_FOUND, "Reel not found")
    return {"success": True, "message": "Reel deleted successfully"}
