"""
How Sitter Backend — Stored File Route
========================================

What:  Serves uploaded property images from the storage directory.
Who:   <img> tags in the frontend pointing at /api/files/properties/...
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from howsitter.services.image_service import image_service

router = APIRouter(prefix="/api", tags=["Files"])


@router.get(
    "/files/{file_path:path}",
    summary="Serve an uploaded image",
    responses={
        200: {"description": "Image file"},
        404: {"description": "File not found"},
    },
)
async def serve_file(file_path: str) -> FileResponse:
    # resolve_path refuses anything outside the storage root
    full_path = image_service.resolve_path(file_path)
    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
