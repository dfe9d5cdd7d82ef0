from __future__ import annotations

import asyncio
from typing import Any

from supabase import Client, PostgrestAPIError, create_client

from dinopedia.config import settings
from dinopedia.errors import ConfigurationError, NotFoundError
from dinopedia.services import logger as log_service

DINOSAURS = "dinosaurs"
FOSSILS = "dinosaur_fossils"
IMAGES = "dinosaur_images"

RECORD_FIELDS = (
    "name",
    "scientific_name",
    "period",
    "diet",
    "length_min_meters",
    "length_max_meters",
    "weight_min_tons",
    "weight_max_tons",
    "habitat",
    "region",
    "description",
)


def get_client() -> Client:
    if not settings.supabase_url or not settings.supabase_service_key:
        raise ConfigurationError("SUPABASE_URL 和 SUPABASE_SERVICE_KEY 是必需的")
    return create_client(settings.supabase_url, settings.supabase_service_key)


_client: Client | None = None


def client() -> Client:
    global _client
    if _client is None:
        _client = get_client()
    return _client


async def _execute(query: Any) -> Any:
    """Run blocking Supabase query execution in a worker thread."""
    return await asyncio.to_thread(query.execute)


def _record_row(data: dict[str, Any]) -> dict[str, Any]:
    return {k: data[k] for k in RECORD_FIELDS if k in data}


# --- Dinosaurs ---


async def get_dinosaurs() -> list[dict[str, Any]]:
    """All dinosaurs ordered by name, each with its `images` attached.

    Images are fetched in one query; if that query fails the records are still
    returned with empty image lists.
    """
    result = await _execute(client().table(DINOSAURS).select("*").order("name"))
    dinosaurs = result.data or []
    log_service.log_db_operation("select", DINOSAURS, "success", f"{len(dinosaurs)} rows")
    if not dinosaurs:
        return []

    by_id: dict[str, list[dict[str, Any]]] = {d["id"]: [] for d in dinosaurs}
    try:
        images = await _execute(
            client()
            .table(IMAGES)
            .select("dinosaur_id, url, description")
            .in_("dinosaur_id", list(by_id))
        )
    except PostgrestAPIError as e:
        log_service.log_db_operation("select", IMAGES, "failed", error=str(e))
        return [{**d, "images": []} for d in dinosaurs]

    for image in images.data or []:
        by_id.setdefault(image["dinosaur_id"], []).append(
            {"url": image["url"], "description": image.get("description")}
        )
    return [{**d, "images": by_id.get(d["id"], [])} for d in dinosaurs]


async def get_dinosaur(dinosaur_id: str) -> dict[str, Any] | None:
    """Detail view with `fossils` and `images`, or None when the id is unknown."""
    result = await _execute(
        client().table(DINOSAURS).select("*").eq("id", dinosaur_id).limit(1)
    )
    if not result.data:
        return None

    fossils = await _execute(client().table(FOSSILS).select("*").eq("dinosaur_id", dinosaur_id))
    images = await _execute(
        client().table(IMAGES).select("url, description").eq("dinosaur_id", dinosaur_id)
    )
    return {**result.data[0], "fossils": fossils.data or [], "images": images.data or []}


async def search_dinosaurs(query: str) -> list[dict[str, Any]]:
    pattern = f"%{query}%"
    result = await _execute(
        client()
        .table(DINOSAURS)
        .select("*")
        .or_(
            f"name.ilike.{pattern},scientific_name.ilike.{pattern},description.ilike.{pattern}"
        )
    )
    return result.data or []


async def get_dinosaurs_by_period(period: str) -> list[dict[str, Any]]:
    result = await _execute(client().table(DINOSAURS).select("*").eq("period", period))
    return result.data or []


async def get_dinosaurs_by_diet(diet: str) -> list[dict[str, Any]]:
    result = await _execute(client().table(DINOSAURS).select("*").eq("diet", diet))
    return result.data or []


async def create_dinosaur(data: dict[str, Any]) -> dict[str, Any]:
    result = await _execute(client().table(DINOSAURS).insert(_record_row(data)))
    log_service.log_db_operation("insert", DINOSAURS, "success", data.get("name"))
    return result.data[0]


async def create_dinosaurs(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not records:
        return []
    result = await _execute(client().table(DINOSAURS).insert([_record_row(r) for r in records]))
    log_service.log_db_operation("insert", DINOSAURS, "success", f"{len(records)} rows")
    return result.data or []


async def update_dinosaur(dinosaur_id: str, data: dict[str, Any]) -> dict[str, Any]:
    result = await _execute(
        client().table(DINOSAURS).update(_record_row(data)).eq("id", dinosaur_id)
    )
    if not result.data:
        raise NotFoundError(f"Dinosaur not found: {dinosaur_id}")
    log_service.log_db_operation("update", DINOSAURS, "success", dinosaur_id)
    return result.data[0]


async def delete_dinosaur(dinosaur_id: str) -> None:
    """Delete a dinosaur and, first, its fossils and images."""
    await _execute(client().table(FOSSILS).delete().eq("dinosaur_id", dinosaur_id))
    await _execute(client().table(IMAGES).delete().eq("dinosaur_id", dinosaur_id))
    result = await _execute(client().table(DINOSAURS).delete().eq("id", dinosaur_id))
    if not result.data:
        raise NotFoundError(f"Dinosaur not found: {dinosaur_id}")
    log_service.log_db_operation("delete", DINOSAURS, "success", dinosaur_id)


# --- Fossils ---


async def add_fossils(dinosaur_id: str, fossils: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not fossils:
        return []
    rows = [{**f, "dinosaur_id": dinosaur_id} for f in fossils]
    result = await _execute(client().table(FOSSILS).insert(rows))
    log_service.log_db_operation("insert", FOSSILS, "success", f"{len(rows)} rows for {dinosaur_id}")
    return result.data or []


# --- Images ---


async def add_images(dinosaur_id: str, images: list[dict[str, Any]]) -> None:
    if not images:
        return
    rows = [{**i, "dinosaur_id": dinosaur_id} for i in images]
    await _execute(client().table(IMAGES).insert(rows))
    log_service.log_db_operation("insert", IMAGES, "success", f"{len(rows)} rows for {dinosaur_id}")


async def get_images(dinosaur_id: str) -> list[dict[str, Any]]:
    result = await _execute(
        client().table(IMAGES).select("url, description").eq("dinosaur_id", dinosaur_id)
    )
    return result.data or []


async def delete_image(dinosaur_id: str, url: str) -> None:
    result = await _execute(
        client().table(IMAGES).delete().eq("dinosaur_id", dinosaur_id).eq("url", url)
    )
    if not result.data:
        raise NotFoundError(f"Image not found: {url}")
    log_service.log_db_operation("delete", IMAGES, "success", url)
