"""
Video routes — folder listing, browsing, search, stream links, thumbnails.

Route prefix: {api_prefix}/videos
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from api.dependencies import get_token_manager, get_video_adapter
from connectors.routes import ACCESS_TOKEN_COOKIE
from connectors.token_manager import TokenLifecycleManager
from utils.dropbox_paths import to_api_path
from utils.errors import ListingError
from videos.adapter import VideoListingAdapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["videos"])


@router.get("")
async def list_videos(
    folder_path: Optional[str] = Query(None, alias="folderPath"),
    adapter: VideoListingAdapter = Depends(get_video_adapter),
) -> Any:
    """
    Videos in ``folderPath`` (default: the configured folder).

    When the folder is missing or inaccessible the response carries the
    root folders so the UI can offer alternatives.
    """
    try:
        videos = await adapter.list_videos(folder_path)
    except ListingError as exc:
        if exc.status_code == 401:
            raise
        logger.warning("Listing %r failed: %s", folder_path, exc.message)
        body: Dict[str, Any] = {"error": exc.message, "errorCode": exc.error_code, "rootFolders": []}
        try:
            body["rootFolders"] = await adapter.list_root_folders()
        except ListingError as hint_exc:
            logger.warning("Could not list root folders as a hint: %s", hint_exc.message)
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body)

    return {"videos": [v.to_wire() for v in videos]}


@router.get("/folders")
async def list_folders(
    folder_path: Optional[str] = Query(None, alias="folderPath"),
    adapter: VideoListingAdapter = Depends(get_video_adapter),
) -> Dict[str, Any]:
    contents = await adapter.list_folder_contents(folder_path)
    return {"path": to_api_path(folder_path), "contents": [c.to_wire() for c in contents]}


@router.get("/search")
async def search_files(
    query: str = Query(""),
    search_path: Optional[str] = Query(None, alias="searchPath"),
    adapter: VideoListingAdapter = Depends(get_video_adapter),
) -> Dict[str, Any]:
    try:
        results = await adapter.search(query, search_path)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return {
        "results": [r.to_wire() for r in results],
        "query": query,
        "searchPath": to_api_path(search_path),
        "total": len(results),
    }


@router.get("/stream-url")
async def stream_url(
    path: Optional[str] = Query(None),
    adapter: VideoListingAdapter = Depends(get_video_adapter),
) -> Dict[str, str]:
    if not path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Path is required")
    return {"url": await adapter.get_stream_url(path)}


@router.get("/thumbnail")
async def thumbnail(
    path: Optional[str] = Query(None),
    cookie_token: Optional[str] = Cookie(None, alias=ACCESS_TOKEN_COOKIE),
    adapter: VideoListingAdapter = Depends(get_video_adapter),
    manager: TokenLifecycleManager = Depends(get_token_manager),
) -> Response:
    """JPEG thumbnail for one video, cached by the browser for an hour."""
    if not path:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Path is required"})

    token = cookie_token or await manager.get_valid_access_token()
    if not token:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Dropbox access token not configured or invalid. Please authenticate with Dropbox first."},
        )

    try:
        data = await adapter.get_thumbnail(path, access_token=token)
    except ListingError as exc:
        logger.warning("Thumbnail for %s failed: %s", path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Thumbnail not available", "details": exc.message},
        )

    if data is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Thumbnail not supported for this video format", "code": "PREVIEW_NOT_SUPPORTED"},
        )

    return Response(
        content=data,
        media_type="image/jpeg",
        headers={"Cache-Control": "public, max-age=3600"},
    )
