from __future__ import annotations

import json
from enum import Enum
from typing import Any, Sequence

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from dinopedia.errors import ExtractionError
from dinopedia.llm_client import ChatClient
from dinopedia.models.dinosaur import (
    ExtractedInfo,
    FossilRecord,
    ShapeError,
    ValidationResult,
)
from dinopedia.services.prompt_store import render_prompt
from dinopedia.tools.tavily_search import SearchResult

MAX_IMAGE_URLS = 5


class FailurePolicy(str, Enum):
    """What an extraction operation does when the model call or its output fails."""

    RAISE = "raise"
    EMPTY = "empty"
    CONSERVATIVE = "conservative"


DEFAULT_POLICIES: dict[str, FailurePolicy] = {
    "basic_info": FailurePolicy.RAISE,
    "fossils": FailurePolicy.EMPTY,
    "image_urls": FailurePolicy.EMPTY,
    "validation": FailurePolicy.CONSERVATIVE,
}

# (result count, per-result content chars, include source url)
INPUT_BUDGETS: dict[str, tuple[int, int, bool]] = {
    "basic_info": (5, 20000, True),
    "fossils": (3, 5000, False),
    "image_urls": (3, 10000, True),
}

_info_adapter = TypeAdapter(ExtractedInfo)
_validation_adapter = TypeAdapter(ValidationResult)
_fossil_list = TypeAdapter(list[FossilRecord])
_url_list = TypeAdapter(list[str])


def extract_json_payload(raw_text: str) -> Any:
    """Decode the JSON object or array in a model reply, tolerating code fences and prose."""
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()

    decoder = json.JSONDecoder()
    error: json.JSONDecodeError | None = None
    for start, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError as e:
            error = error or e
            continue
        return value
    raise error or json.JSONDecodeError("no JSON value found", text, 0)


def parse_model_output(raw_text: str, adapter: TypeAdapter) -> Any:
    """Return the validated value, or a ShapeError describing why it did not fit."""
    try:
        payload = extract_json_payload(raw_text)
    except json.JSONDecodeError as e:
        return ShapeError(raw=raw_text, reason=f"invalid JSON: {e.msg}")
    try:
        return adapter.validate_python(payload)
    except ValidationError as e:
        return ShapeError(raw=payload, reason=f"unexpected shape: {e.error_count()} field error(s)")


def format_search_results(
    results: Sequence[SearchResult],
    *,
    max_results: int,
    max_chars: int,
    include_url: bool = True,
) -> str:
    entries = []
    for r in list(results)[:max_results]:
        if include_url:
            entry = render_prompt(
                "extractor.search_result_entry",
                title=r.title,
                content=r.content[:max_chars],
                url=r.url,
            )
        else:
            entry = render_prompt(
                "extractor.search_result_entry_no_url",
                title=r.title,
                content=r.content[:max_chars],
            )
        entries.append(entry)
    return "\n".join(entries)


class InformationExtractor:
    """LLM-backed extraction of dinosaur facts from search results.

    Every operation has an explicit failure policy (see DEFAULT_POLICIES); pass
    `policies` to override individual entries.
    """

    def __init__(
        self,
        chat: ChatClient,
        policies: dict[str, FailurePolicy] | None = None,
    ):
        self.chat = chat
        self.policies = {**DEFAULT_POLICIES, **(policies or {})}

    def _results_block(self, operation: str, results: Sequence[SearchResult]) -> str:
        max_results, max_chars, include_url = INPUT_BUDGETS[operation]
        return format_search_results(
            results, max_results=max_results, max_chars=max_chars, include_url=include_url
        )

    def _fail(self, operation: str, message: str, fallback: Any) -> Any:
        policy = self.policies[operation]
        if policy is FailurePolicy.RAISE:
            raise ExtractionError(message)
        logger.warning(f"{operation} degraded ({policy.value}): {message}")
        return fallback

    async def _ask(self, operation: str, prompt: str) -> str:
        return await self.chat.complete(
            prompt,
            system=render_prompt("extractor.system_prompt"),
            caller=f"extractor.{operation}",
        )

    async def extract_basic_info(
        self, dinosaur_name: str, search_results: Sequence[SearchResult]
    ) -> ExtractedInfo:
        prompt = render_prompt(
            "extractor.basic_info",
            dinosaur_name=dinosaur_name,
            search_results=self._results_block("basic_info", search_results),
        )
        fallback = ExtractedInfo(name=dinosaur_name)
        try:
            raw = await self._ask("basic_info", prompt)
        except Exception as e:
            return self._fail("basic_info", f"信息提取失败: {e}", fallback)

        parsed = parse_model_output(raw, _info_adapter)
        if isinstance(parsed, ShapeError):
            return self._fail("basic_info", f"信息提取失败: {parsed.reason}", fallback)
        logger.info(f"Extracted basic info for {dinosaur_name}")
        return parsed

    async def extract_fossils(
        self, dinosaur_name: str, search_results: Sequence[SearchResult]
    ) -> list[FossilRecord]:
        prompt = render_prompt(
            "extractor.fossils",
            dinosaur_name=dinosaur_name,
            search_results=self._results_block("fossils", search_results),
        )
        try:
            raw = await self._ask("fossils", prompt)
        except Exception as e:
            return self._fail("fossils", f"化石信息提取失败: {e}", [])

        parsed = parse_model_output(raw, _fossil_list)
        if isinstance(parsed, ShapeError):
            return self._fail("fossils", f"化石信息提取失败: {parsed.reason}", [])
        logger.info(f"Extracted {len(parsed)} fossil record(s) for {dinosaur_name}")
        return parsed

    async def extract_image_urls(
        self, dinosaur_name: str, search_results: Sequence[SearchResult]
    ) -> list[str]:
        prompt = render_prompt(
            "extractor.image_urls",
            dinosaur_name=dinosaur_name,
            search_results=self._results_block("image_urls", search_results),
            max_images=MAX_IMAGE_URLS,
        )
        try:
            raw = await self._ask("image_urls", prompt)
        except Exception as e:
            return self._fail("image_urls", f"图片URL提取失败: {e}", [])

        parsed = parse_model_output(raw, _url_list)
        if isinstance(parsed, ShapeError):
            return self._fail("image_urls", f"图片URL提取失败: {parsed.reason}", [])
        return parsed[:MAX_IMAGE_URLS]

    async def validate_and_clean_info(self, extracted_info: ExtractedInfo) -> ValidationResult:
        """Second model pass that checks minimal fields and returns a normalized copy.

        Never raises under the default policy: malformed output yields
        is_valid=False with the input echoed back as cleaned_info.
        """
        prompt = render_prompt(
            "extractor.validation",
            extracted_info=json.dumps(
                extracted_info.model_dump(), ensure_ascii=False, indent=2
            ),
        )
        try:
            raw = await self._ask("validation", prompt)
        except Exception as e:
            return self._fail(
                "validation",
                f"验证过程出错: {e}",
                ValidationResult(is_valid=False, errors=["验证过程出错"], cleaned_info=extracted_info),
            )

        parsed = parse_model_output(raw, _validation_adapter)
        if isinstance(parsed, ShapeError):
            return self._fail(
                "validation",
                f"返回结果格式不正确: {parsed.reason}",
                ValidationResult(
                    is_valid=False, errors=["返回结果格式不正确"], cleaned_info=extracted_info
                ),
            )
        logger.info(f"Validation finished for {extracted_info.name}: valid={parsed.is_valid}")
        return parsed
