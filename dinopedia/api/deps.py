from __future__ import annotations

from fastapi import Request

from dinopedia.agents.dinosaur_agent import DinosaurAgent

RECOMMENDED_DINOSAURS = [
    "霸王龙",
    "三角龙",
    "剑龙",
    "腕龙",
    "迅猛龙",
    "翼龙",
    "雷龙",
    "棘龙",
    "异特龙",
    "副栉龙",
    "甲龙",
    "慈母龙",
    "重爪龙",
    "巨兽龙",
    "食肉牛龙",
    "双冠龙",
    "角鼻龙",
    "始祖鸟",
    "恐爪龙",
    "暴龙",
]

MAX_RECOMMENDATIONS = 20
MAX_BATCH_RESEARCH = 10


def get_agent(request: Request) -> DinosaurAgent | None:
    """The research agent built at startup, or None if its configuration was incomplete."""
    return getattr(request.app.state, "agent", None)
