from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from dinopedia.errors import NotFoundError, PersistenceError

DINOSAURS_PATH = "/api/dinosaurs"


def error_message(exc: BaseException) -> str:
    """Most specific message available: backend body message, then status text, then the exception."""
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            for key in ("message", "detail"):
                value = payload.get(key)
                if isinstance(value, str) and value:
                    return value
        if response.reason_phrase:
            return response.reason_phrase
    return str(exc) or exc.__class__.__name__


async def _log_request(request: httpx.Request) -> None:
    logger.debug(f"API request: {request.method} {request.url}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    if response.is_server_error:
        logger.warning(f"API error: {response.status_code} {request.method} {request.url}")
    else:
        logger.debug(f"API response: {response.status_code} {request.url}")


class DinosaurApiClient:
    """Thin async REST client for the backend's /api/dinosaurs surface."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            event_hooks={"request": [_log_request], "response": [_log_response]},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, label: str, method: str, url: str, *, missing_ok: bool = False, **kwargs: Any
    ) -> Any:
        """Send one request and return its decoded JSON body (None for an empty body).

        With `missing_ok` a 404 is an expected answer and is logged at debug level.
        """
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            message = error_message(e)
            if status == 404 and missing_ok:
                logger.debug(f"{label} ({method} {url}): {message}")
            else:
                logger.error(f"{label} ({method} {url}): {message}")
            if status == 404 and method == "DELETE":
                raise NotFoundError(f"{label}: {message}") from e
            raise PersistenceError(f"{label}: {message}", status_code=status) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{label} ({method} {url}): response body is not JSON")
            raise PersistenceError(
                f"{label}: 响应不是合法的 JSON", status_code=response.status_code
            ) from e

    # --- Reads ---

    async def get_all(self) -> list[dict[str, Any]]:
        return await self._request("获取恐龙列表失败", "GET", DINOSAURS_PATH)

    async def get(self, dinosaur_id: str) -> dict[str, Any] | None:
        try:
            return await self._request(
                "获取恐龙详情失败", "GET", f"{DINOSAURS_PATH}/{dinosaur_id}", missing_ok=True
            )
        except PersistenceError as e:
            if e.status_code == 404:
                return None
            raise

    async def search(self, query: str) -> list[dict[str, Any]]:
        return await self._request(
            "搜索恐龙失败", "GET", DINOSAURS_PATH, params={"search": query}
        )

    async def exists(self, name: str) -> bool:
        """Heuristic: keyword search, then case-insensitive match on name or scientific name."""
        try:
            candidates = await self.search(name)
        except PersistenceError as e:
            logger.warning(f"Existence check failed for {name}: {e}")
            return False
        lowered = name.lower()
        return any(
            (d.get("name") or "").lower() == lowered
            or (d.get("scientific_name") or "").lower() == lowered
            for d in candidates
        )

    async def find_exact(self, name: str) -> dict[str, Any] | None:
        """Byte-exact name match over the full list. Case and whitespace are significant."""
        for dinosaur in await self.get_all():
            if dinosaur.get("name") == name:
                return dinosaur
        return None

    # --- Writes ---

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        saved = await self._request("创建恐龙失败", "POST", DINOSAURS_PATH, json=data)
        logger.info(f"Created dinosaur: {data.get('name')}")
        return saved

    async def create_many(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        saved = await self._request(
            "批量创建恐龙失败", "POST", f"{DINOSAURS_PATH}/batch", json={"dinosaurs": records}
        )
        logger.info(f"Batch created {len(records)} dinosaurs")
        return saved

    async def update(self, dinosaur_id: str, data: dict[str, Any]) -> dict[str, Any]:
        saved = await self._request(
            "更新恐龙失败", "PUT", f"{DINOSAURS_PATH}/{dinosaur_id}", json=data
        )
        logger.info(f"Updated dinosaur {dinosaur_id}")
        return saved

    async def add_images(self, dinosaur_id: str, images: list[dict[str, Any]]) -> None:
        await self._request(
            "添加图片信息失败",
            "POST",
            f"{DINOSAURS_PATH}/{dinosaur_id}/images",
            json={"images": images},
        )
        logger.info(f"Attached {len(images)} image(s) to dinosaur {dinosaur_id}")

    async def add_fossils(self, dinosaur_id: str, fossils: list[dict[str, Any]]) -> None:
        await self._request(
            "添加化石信息失败",
            "POST",
            f"{DINOSAURS_PATH}/{dinosaur_id}/fossils",
            json={"fossils": fossils},
        )
        logger.info(f"Attached {len(fossils)} fossil record(s) to dinosaur {dinosaur_id}")

    async def delete(self, dinosaur_id: str) -> None:
        await self._request("删除恐龙失败", "DELETE", f"{DINOSAURS_PATH}/{dinosaur_id}")
        logger.info(f"Deleted dinosaur {dinosaur_id}")

    # --- Settings ---

    def set_timeout(self, timeout: float) -> None:
        self._client.timeout = httpx.Timeout(timeout)

    def set_base_url(self, base_url: str) -> None:
        self.base_url = base_url
        self._client.base_url = base_url
