from __future__ import annotations

from fastapi import APIRouter, HTTPException
from loguru import logger

from dinopedia.errors import NotFoundError
from dinopedia.models.schemas import (
    BatchCreateRequest,
    DinosaurCreate,
    DinosaurUpdate,
    FossilsRequest,
    ImageDeleteRequest,
    ImagesRequest,
)
from dinopedia.services import supabase as db

router = APIRouter(prefix="/api/dinosaurs", tags=["dinosaurs"])


def _server_error(detail: str, exc: Exception) -> HTTPException:
    logger.error(f"{detail}: {exc}")
    return HTTPException(status_code=500, detail=detail)


@router.get("")
async def list_dinosaurs(
    search: str | None = None,
    period: str | None = None,
    diet: str | None = None,
):
    """List dinosaurs with their images, or filter by keyword, period or diet."""
    try:
        if search:
            return await db.search_dinosaurs(search)
        if period:
            return await db.get_dinosaurs_by_period(period)
        if diet:
            return await db.get_dinosaurs_by_diet(diet)
        return await db.get_dinosaurs()
    except Exception as e:
        raise _server_error("Failed to fetch dinosaurs", e) from e


@router.get("/{dinosaur_id}")
async def get_dinosaur(dinosaur_id: str):
    """Get a dinosaur with its fossils and images."""
    try:
        dinosaur = await db.get_dinosaur(dinosaur_id)
    except Exception as e:
        raise _server_error("Failed to fetch dinosaur", e) from e
    if not dinosaur:
        raise HTTPException(status_code=404, detail="Dinosaur not found")
    return dinosaur


@router.post("", status_code=201)
async def create_dinosaur(body: DinosaurCreate):
    try:
        return await db.create_dinosaur(body.model_dump(exclude_none=True))
    except Exception as e:
        raise _server_error("Failed to create dinosaur", e) from e


@router.post("/batch", status_code=201)
async def create_dinosaurs(body: BatchCreateRequest):
    try:
        return await db.create_dinosaurs([d.model_dump(exclude_none=True) for d in body.dinosaurs])
    except Exception as e:
        raise _server_error("Failed to create dinosaurs", e) from e


@router.put("/{dinosaur_id}")
async def update_dinosaur(dinosaur_id: str, body: DinosaurUpdate):
    try:
        return await db.update_dinosaur(dinosaur_id, body.model_dump(exclude_unset=True))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="Dinosaur not found") from e
    except Exception as e:
        raise _server_error("Failed to update dinosaur", e) from e


@router.delete("/{dinosaur_id}")
async def delete_dinosaur(dinosaur_id: str):
    """Delete a dinosaur together with its fossils and images."""
    try:
        await db.delete_dinosaur(dinosaur_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="Dinosaur not found") from e
    except Exception as e:
        raise _server_error("Failed to delete dinosaur", e) from e
    return {"status": "deleted"}


# --- Fossils ---


@router.post("/{dinosaur_id}/fossils", status_code=201)
async def add_fossils(dinosaur_id: str, body: FossilsRequest):
    try:
        return await db.add_fossils(
            dinosaur_id, [f.model_dump(exclude_none=True) for f in body.fossils]
        )
    except Exception as e:
        raise _server_error("Failed to add fossils", e) from e


# --- Images ---


@router.get("/{dinosaur_id}/images")
async def get_images(dinosaur_id: str):
    try:
        return await db.get_images(dinosaur_id)
    except Exception as e:
        raise _server_error("Failed to fetch dinosaur images", e) from e


@router.post("/{dinosaur_id}/images", status_code=201)
async def add_images(dinosaur_id: str, body: ImagesRequest):
    try:
        await db.add_images(dinosaur_id, [i.model_dump(exclude_none=True) for i in body.images])
    except Exception as e:
        raise _server_error("Failed to add images", e) from e
    return {"status": "created", "count": len(body.images)}


@router.delete("/{dinosaur_id}/images")
async def delete_image(dinosaur_id: str, body: ImageDeleteRequest):
    try:
        await db.delete_image(dinosaur_id, body.url)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="Image not found") from e
    except Exception as e:
        raise _server_error("Failed to delete dinosaur image", e) from e
    return {"status": "deleted"}
