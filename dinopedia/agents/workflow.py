from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from dinopedia.errors import DinopediaError, RetryExhaustedError
from dinopedia.models.dinosaur import (
    ExtractedInfo,
    FossilRecord,
    ImageRecord,
    PipelineData,
    PipelineResult,
)
from dinopedia.services import logger as log_service
from dinopedia.tools.api_client import DinosaurApiClient
from dinopedia.tools.information_extractor import InformationExtractor
from dinopedia.tools.tavily_search import DinosaurTavilySearch, ImageResult, SearchResult

T = TypeVar("T")

FOSSIL_ASPECT = "fossil discovery excavation paleontology"
UNKNOWN_SCIENTIFIC_NAME = "Unknown"
UNKNOWN_VALUE = "未知"


class WorkflowStepError(DinopediaError):
    """A pipeline step failed; the message names the step."""


class DinosaurResearchWorkflow:
    """Linear research pipeline: SEARCH(basic | images) -> EXTRACT -> VALIDATE -> PERSIST.

    Every fatal step runs under `with_retry`. The two search branches are retried
    independently and joined settle-all, so one failing branch only adds an entry
    to `errors`. `execute` never raises; it always returns a PipelineResult.
    """

    def __init__(
        self,
        search_tool: DinosaurTavilySearch,
        extractor: InformationExtractor,
        api_client: DinosaurApiClient,
        *,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        include_fossils: bool = False,
    ):
        self.search_tool = search_tool
        self.extractor = extractor
        self.api_client = api_client
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.include_fossils = include_fossils

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str,
        subject: str,
    ) -> T:
        """Run `operation` up to `max_retries` times with a fixed delay between attempts."""
        last_error: BaseException | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                logger.info(f"{label} (attempt {attempt}/{self.max_retries}): {subject}")
                return await operation()
            except Exception as e:
                last_error = e
                logger.warning(f"{label} failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt < self.max_retries:
                    logger.debug(f"Waiting {self.retry_delay}s before retrying {label}")
                    await asyncio.sleep(self.retry_delay)

        raise RetryExhaustedError(label, self.max_retries, last_error)

    # --- Steps ---

    async def search_basic_info(self, dinosaur_name: str) -> list[SearchResult]:
        try:
            return await self.search_tool.search_basic(dinosaur_name)
        except Exception as e:
            raise WorkflowStepError(f"搜索基本信息失败: {e}") from e

    async def search_images(self, dinosaur_name: str) -> list[ImageResult]:
        try:
            return await self.search_tool.search_images(dinosaur_name)
        except Exception as e:
            raise WorkflowStepError(f"搜索图片信息失败: {e}") from e

    async def search_fossils(self, dinosaur_name: str) -> list[SearchResult]:
        try:
            return await self.search_tool.search_aspect(dinosaur_name, FOSSIL_ASPECT)
        except Exception as e:
            raise WorkflowStepError(f"搜索化石信息失败: {e}") from e

    async def extract_information(
        self, dinosaur_name: str, basic_results: list[SearchResult]
    ) -> ExtractedInfo:
        logger.info(f"Extracting info for {dinosaur_name} from {len(basic_results)} result(s)")
        try:
            return await self.extractor.extract_basic_info(dinosaur_name, basic_results)
        except Exception as e:
            raise WorkflowStepError(f"信息提取失败: {e}") from e

    async def validate_information(self, extracted: ExtractedInfo) -> ExtractedInfo:
        validation = await self.extractor.validate_and_clean_info(extracted)
        if not validation.is_valid:
            raise WorkflowStepError(f"信息验证失败: {', '.join(validation.errors)}")
        return validation.cleaned_info

    async def save_to_database(
        self,
        dinosaur_name: str,
        info: ExtractedInfo,
        images: list[ImageResult],
        fossils: list[FossilRecord] | None = None,
    ) -> dict[str, Any]:
        payload = build_record_payload(dinosaur_name, info)
        try:
            existing = await self.api_client.find_exact(payload["name"])
            if existing and existing.get("id"):
                logger.info(f"Updating existing record: {payload['name']}")
                saved = await self.api_client.update(existing["id"], payload)
            else:
                logger.info(f"Creating new record: {payload['name']}")
                saved = await self.api_client.create(payload)

            saved_id = saved.get("id")
            if saved_id and images:
                records = [ImageRecord(url=i.url, description=i.description) for i in images]
                await self.api_client.add_images(
                    saved_id, [r.model_dump(exclude_none=True) for r in records]
                )
            if saved_id and fossils:
                await self.api_client.add_fossils(
                    saved_id, [f.model_dump(exclude_none=True) for f in fossils]
                )
        except Exception as e:
            raise WorkflowStepError(f"保存失败: {e}") from e
        return saved

    # --- Orchestration ---

    async def _search(
        self, dinosaur_name: str, errors: list[str]
    ) -> tuple[list[SearchResult], list[ImageResult], list[SearchResult]]:
        branches = [
            self.with_retry(lambda: self.search_basic_info(dinosaur_name), "搜索基本信息", dinosaur_name),
            self.with_retry(lambda: self.search_images(dinosaur_name), "搜索图片信息", dinosaur_name),
        ]
        if self.include_fossils:
            branches.append(
                self.with_retry(lambda: self.search_fossils(dinosaur_name), "搜索化石信息", dinosaur_name)
            )

        outcomes = await asyncio.gather(*branches, return_exceptions=True)
        basic, images, fossils = (list(outcomes) + [[]])[:3]

        if isinstance(basic, BaseException):
            errors.append(f"基本信息搜索失败: {basic}")
            basic = []
        if isinstance(images, BaseException):
            errors.append(f"图片信息搜索失败: {images}")
            images = []
        if isinstance(fossils, BaseException):
            errors.append(f"化石信息搜索失败: {fossils}")
            fossils = []
        return basic, images, fossils

    async def execute(self, dinosaur_name: str) -> PipelineResult:
        start = time.monotonic()
        errors: list[str] = []

        try:
            logger.info(f"Starting research: {dinosaur_name}")

            basic_results, images, fossil_results = await self._search(dinosaur_name, errors)
            log_service.log_research_step(
                dinosaur_name,
                "search",
                "completed",
                {"basic": len(basic_results), "images": len(images), "fossils": len(fossil_results)},
            )
            if len(basic_results) + len(images) + len(fossil_results) == 0:
                raise WorkflowStepError("所有搜索都失败了，无法获取恐龙信息")

            extracted = await self.with_retry(
                lambda: self.extract_information(dinosaur_name, basic_results),
                "提取信息",
                dinosaur_name,
            )
            log_service.log_research_step(dinosaur_name, "extract", "completed")

            validated = await self.with_retry(
                lambda: self.validate_information(extracted),
                "验证信息",
                dinosaur_name,
            )
            log_service.log_research_step(dinosaur_name, "validate", "completed")

            fossils: list[FossilRecord] = []
            if fossil_results:
                # Fossil extraction degrades to [] on failure, so it is not retried.
                fossils = await self.extractor.extract_fossils(dinosaur_name, fossil_results)

            saved = await self.with_retry(
                lambda: self.save_to_database(dinosaur_name, validated, images, fossils),
                "保存到数据库",
                dinosaur_name,
            )
            log_service.log_research_step(
                dinosaur_name, "persist", "completed", {"id": saved.get("id")}
            )

            processing_time = int((time.monotonic() - start) * 1000)
            logger.info(f"Research finished: {dinosaur_name} ({processing_time}ms)")
            return PipelineResult(
                success=True,
                data=PipelineData(
                    basic_info=validated,
                    saved_data=saved,
                    images=[ImageRecord(url=i.url, description=i.description) for i in images],
                ),
                errors=errors or None,
                processing_time=processing_time,
            )
        except Exception as e:
            processing_time = int((time.monotonic() - start) * 1000)
            message = str(e) or e.__class__.__name__
            logger.error(f"Research failed: {dinosaur_name} ({processing_time}ms): {message}")
            log_service.log_research_step(dinosaur_name, "pipeline", "failed", {"error": message})
            return PipelineResult(
                success=False,
                error=message,
                errors=[*errors, message],
                processing_time=processing_time,
            )


def build_record_payload(dinosaur_name: str, info: ExtractedInfo) -> dict[str, Any]:
    """Record body for create/update; required columns fall back to placeholders."""
    payload: dict[str, Any] = {
        "name": info.name or dinosaur_name,
        "scientific_name": info.scientific_name or UNKNOWN_SCIENTIFIC_NAME,
        "period": info.period or UNKNOWN_VALUE,
        "diet": info.diet or UNKNOWN_VALUE,
        "length_min_meters": info.length_min_meters,
        "length_max_meters": info.length_max_meters,
        "weight_min_tons": info.weight_min_tons,
        "weight_max_tons": info.weight_max_tons,
        "habitat": info.habitat,
        "region": info.region,
        "description": info.description,
    }
    return {key: value for key, value in payload.items() if value is not None}
