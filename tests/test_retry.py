from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dinopedia.agents.workflow import DinosaurResearchWorkflow
from dinopedia.errors import RetryExhaustedError


def _workflow(**kwargs) -> DinosaurResearchWorkflow:
    return DinosaurResearchWorkflow(MagicMock(), MagicMock(), MagicMock(), **kwargs)


@pytest.mark.asyncio
async def test_with_retry_returns_value_after_transient_failures():
    workflow = _workflow(max_retries=3, retry_delay=2.0)
    operation = AsyncMock(side_effect=[RuntimeError("boom"), RuntimeError("boom"), "ok"])

    with patch("dinopedia.agents.workflow.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await workflow.with_retry(operation, "提取信息", "Tyrannosaurus")

    assert result == "ok"
    assert operation.await_count == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(2.0)


@pytest.mark.asyncio
async def test_with_retry_first_success_does_not_sleep():
    workflow = _workflow(max_retries=3, retry_delay=2.0)
    operation = AsyncMock(return_value=42)

    with patch("dinopedia.agents.workflow.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await workflow.with_retry(operation, "提取信息", "Tyrannosaurus")

    assert result == 42
    operation.assert_awaited_once()
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_with_retry_exhausts_exact_attempt_budget():
    workflow = _workflow(max_retries=3, retry_delay=2.0)
    operation = AsyncMock(side_effect=RuntimeError("backend down"))

    with patch("dinopedia.agents.workflow.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(RetryExhaustedError) as exc_info:
            await workflow.with_retry(operation, "保存到数据库", "Tyrannosaurus")

    assert operation.await_count == 3
    assert sleep.await_count == 2
    error = exc_info.value
    assert error.attempts == 3
    assert error.label == "保存到数据库"
    assert isinstance(error.last_error, RuntimeError)
    message = str(error)
    assert "保存到数据库" in message
    assert "3" in message
    assert "backend down" in message


@pytest.mark.asyncio
async def test_with_retry_single_attempt_budget():
    workflow = _workflow(max_retries=1, retry_delay=5.0)
    operation = AsyncMock(side_effect=ValueError("nope"))

    with patch("dinopedia.agents.workflow.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(RetryExhaustedError):
            await workflow.with_retry(operation, "验证信息", "Stegosaurus")

    operation.assert_awaited_once()
    sleep.assert_not_awaited()
