from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from dinopedia.errors import ExtractionError
from dinopedia.models.dinosaur import ExtractedInfo, ShapeError
from dinopedia.tools.information_extractor import (
    FailurePolicy,
    InformationExtractor,
    _info_adapter,
    extract_json_payload,
    format_search_results,
    parse_model_output,
)
from dinopedia.tools.tavily_search import SearchResult


def _chat(reply: str | None = None, error: Exception | None = None) -> MagicMock:
    chat = MagicMock()
    chat.complete = AsyncMock(return_value=reply, side_effect=error)
    return chat


def _results(count: int, content: str = "Large theropod from the Late Cretaceous.") -> list[SearchResult]:
    return [
        SearchResult(title=f"Result {i}", url=f"https://example.org/{i}", content=content)
        for i in range(count)
    ]


def test_extract_json_payload_strips_code_fences():
    raw = '```json\n{"name": "霸王龙", "period": "白垩纪晚期"}\n```'
    assert extract_json_payload(raw) == {"name": "霸王龙", "period": "白垩纪晚期"}


def test_extract_json_payload_ignores_surrounding_prose():
    raw = 'Here is the result: ["https://a.org/1.jpg", "https://a.org/2.jpg"] hope it helps'
    assert extract_json_payload(raw) == ["https://a.org/1.jpg", "https://a.org/2.jpg"]


def test_parse_model_output_returns_shape_error_for_wrong_types():
    parsed = parse_model_output('{"name": "Rex", "length_max_meters": "very long"}', _info_adapter)
    assert isinstance(parsed, ShapeError)
    assert "unexpected shape" in parsed.reason


def test_parse_model_output_returns_shape_error_for_non_json():
    parsed = parse_model_output("I could not find anything.", _info_adapter)
    assert isinstance(parsed, ShapeError)
    assert parsed.raw == "I could not find anything."


def test_format_search_results_truncates_and_can_drop_urls():
    block = format_search_results(_results(3, content="x" * 50), max_results=2, max_chars=10, include_url=False)

    assert "Result 0" in block
    assert "Result 1" in block
    assert "Result 2" not in block
    assert "x" * 10 in block
    assert "x" * 11 not in block
    assert "来源:" not in block


def test_extract_json_payload_skips_brackets_in_leading_prose():
    raw = '以下是提取结果[JSON]:\n{"name": "霸王龙", "period": "白垩纪晚期"}'

    parsed = parse_model_output(raw, _info_adapter)

    assert isinstance(parsed, ExtractedInfo)
    assert parsed.name == "霸王龙"
    assert parsed.period == "白垩纪晚期"


def test_format_search_results_keeps_source_lines_inside_content():
    results = [SearchResult(title="t", url="https://example.org/0", content="第一段\n来源: 《古生物学报》1998\n第二段")]

    block = format_search_results(results, max_results=1, max_chars=1000, include_url=False)

    assert block == "标题: t\n内容: 第一段\n来源: 《古生物学报》1998\n第二段\n---"
    assert "https://example.org/0" not in block


@pytest.mark.asyncio
async def test_extract_basic_info_accepts_numeric_strings():
    chat = _chat(json.dumps({"name": "霸王龙", "scientific_name": "Tyrannosaurus rex", "length_max_meters": "12.3"}))
    info = await InformationExtractor(chat).extract_basic_info("霸王龙", _results(1))

    assert info.scientific_name == "Tyrannosaurus rex"
    assert info.length_max_meters == 12.3
    assert info.weight_min_tons is None


@pytest.mark.asyncio
async def test_extract_basic_info_prompt_uses_first_five_results():
    chat = _chat('{"name": "霸王龙"}')
    await InformationExtractor(chat).extract_basic_info("霸王龙", _results(7))

    prompt = chat.complete.await_args.args[0]
    assert "霸王龙" in prompt
    assert "Result 4" in prompt
    assert "Result 5" not in prompt
    assert "https://example.org/0" in prompt
    assert chat.complete.await_args.kwargs["caller"] == "extractor.basic_info"


@pytest.mark.asyncio
async def test_extract_basic_info_raises_on_malformed_output():
    chat = _chat("not json at all")
    with pytest.raises(ExtractionError) as exc_info:
        await InformationExtractor(chat).extract_basic_info("霸王龙", _results(1))
    assert "信息提取失败" in str(exc_info.value)


@pytest.mark.asyncio
async def test_extract_basic_info_raises_when_model_call_fails():
    chat = _chat(error=RuntimeError("rate limited"))
    with pytest.raises(ExtractionError) as exc_info:
        await InformationExtractor(chat).extract_basic_info("霸王龙", _results(1))
    assert "rate limited" in str(exc_info.value)


@pytest.mark.asyncio
async def test_basic_info_policy_can_be_relaxed():
    chat = _chat("garbage")
    extractor = InformationExtractor(chat, policies={"basic_info": FailurePolicy.EMPTY})

    info = await extractor.extract_basic_info("霸王龙", _results(1))

    assert info == ExtractedInfo(name="霸王龙")


@pytest.mark.asyncio
async def test_extract_fossils_returns_empty_on_malformed_output():
    chat = _chat('{"fossils": "none"}')
    assert await InformationExtractor(chat).extract_fossils("霸王龙", _results(1)) == []


@pytest.mark.asyncio
async def test_extract_fossils_parses_records():
    chat = _chat(
        json.dumps(
            [
                {
                    "discovery_location": "Hell Creek Formation, Montana",
                    "discovery_date": "1902",
                    "fossil_type": "partial skeleton",
                }
            ]
        )
    )
    fossils = await InformationExtractor(chat).extract_fossils("霸王龙", _results(5))

    assert len(fossils) == 1
    assert fossils[0].discovery_location == "Hell Creek Formation, Montana"
    prompt = chat.complete.await_args.args[0]
    assert "Result 3" not in prompt
    assert "来源:" not in prompt


@pytest.mark.asyncio
async def test_extract_image_urls_caps_output():
    urls = [f"https://example.org/{i}.jpg" for i in range(8)]
    chat = _chat(json.dumps(urls))

    result = await InformationExtractor(chat).extract_image_urls("霸王龙", _results(2))

    assert result == urls[:5]


@pytest.mark.asyncio
async def test_extract_image_urls_returns_empty_when_model_call_fails():
    chat = _chat(error=RuntimeError("timeout"))
    assert await InformationExtractor(chat).extract_image_urls("霸王龙", _results(2)) == []


@pytest.mark.asyncio
async def test_validate_malformed_output_is_conservative():
    info = ExtractedInfo(name="霸王龙", scientific_name="Tyrannosaurus rex")
    chat = _chat("The information looks fine to me.")

    result = await InformationExtractor(chat).validate_and_clean_info(info)

    assert result.is_valid is False
    assert result.cleaned_info == info
    assert result.errors == ["返回结果格式不正确"]


@pytest.mark.asyncio
async def test_validate_call_failure_is_conservative():
    info = ExtractedInfo(name="霸王龙")
    chat = _chat(error=RuntimeError("503"))

    result = await InformationExtractor(chat).validate_and_clean_info(info)

    assert result.is_valid is False
    assert result.cleaned_info == info
    assert result.errors == ["验证过程出错"]


@pytest.mark.asyncio
async def test_validate_parses_camel_case_reply():
    info = ExtractedInfo(name="霸王龙", period="白垩纪")
    reply = "```json\n" + json.dumps(
        {
            "isValid": True,
            "errors": [],
            "cleanedInfo": {"name": "霸王龙", "scientific_name": "Tyrannosaurus rex", "period": "白垩纪晚期"},
        },
        ensure_ascii=False,
    ) + "\n```"
    chat = _chat(reply)

    result = await InformationExtractor(chat).validate_and_clean_info(info)

    assert result.is_valid is True
    assert result.cleaned_info.period == "白垩纪晚期"
    assert '"period": "白垩纪"' in chat.complete.await_args.args[0]
