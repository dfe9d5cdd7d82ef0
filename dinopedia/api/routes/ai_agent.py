from __future__ import annotations

import random

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from dinopedia.agents.dinosaur_agent import DinosaurAgent
from dinopedia.api.deps import (
    MAX_BATCH_RESEARCH,
    MAX_RECOMMENDATIONS,
    RECOMMENDED_DINOSAURS,
    get_agent,
)
from dinopedia.models.dinosaur import ResearchResult
from dinopedia.models.schemas import (
    BatchResearchRequest,
    RecommendationsResponse,
    ResearchRequest,
    StatusResponse,
)

router = APIRouter(prefix="/api/ai-agent", tags=["ai-agent"])


def _require_agent(agent: DinosaurAgent | None) -> DinosaurAgent:
    if agent is None:
        raise HTTPException(status_code=400, detail="AI-Agent 未初始化")
    return agent


@router.post("/research", response_model=ResearchResult, response_model_by_alias=True)
async def research_dinosaur(
    body: ResearchRequest,
    agent: DinosaurAgent | None = Depends(get_agent),
):
    """Research one dinosaur and persist the result."""
    agent = _require_agent(agent)
    name = body.dinosaur_name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="恐龙名称不能为空")
    return await agent.research_one(name)


@router.post(
    "/research/batch", response_model=list[ResearchResult], response_model_by_alias=True
)
async def research_dinosaurs(
    body: BatchResearchRequest,
    agent: DinosaurAgent | None = Depends(get_agent),
):
    """Research up to ten dinosaurs sequentially."""
    agent = _require_agent(agent)
    if not body.dinosaur_names:
        raise HTTPException(status_code=400, detail="恐龙名称列表不能为空")

    names = [n.strip() for n in body.dinosaur_names if n and n.strip()]
    if not names:
        raise HTTPException(status_code=400, detail="没有有效的恐龙名称")
    if len(names) > MAX_BATCH_RESEARCH:
        raise HTTPException(
            status_code=400, detail=f"批量处理最多支持{MAX_BATCH_RESEARCH}个恐龙"
        )
    return await agent.research_many(names)


@router.get("/status", response_model=StatusResponse, response_model_exclude_none=True)
async def get_status(agent: DinosaurAgent | None = Depends(get_agent)):
    if agent is None:
        return StatusResponse(initialized=False, message="AI-Agent 未初始化")
    try:
        stats = await agent.get_stats()
        config = agent.get_config()
    except Exception as e:
        logger.error(f"Failed to read agent status: {e}")
        return StatusResponse(initialized=True, error=str(e), message="AI-Agent 状态异常")
    return StatusResponse(initialized=True, config=config, stats=stats, message="AI-Agent 运行正常")


@router.get("/recommendations", response_model=RecommendationsResponse)
async def get_recommendations(count: int = 10):
    """Random sample of well-known dinosaurs to research."""
    requested = min(count if count > 0 else 10, MAX_RECOMMENDATIONS)
    picks = random.sample(RECOMMENDED_DINOSAURS, requested)
    return RecommendationsResponse(
        success=True,
        recommendations=picks,
        total=requested,
        message=f"推荐 {requested} 个恐龙进行研究",
    )
