from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from dinopedia.models.dinosaur import FossilRecord, ImageRecord


# --- Requests ---


class DinosaurCreate(BaseModel):
    name: str
    scientific_name: str | None = None
    period: str | None = None
    diet: str | None = None
    length_min_meters: float | None = None
    length_max_meters: float | None = None
    weight_min_tons: float | None = None
    weight_max_tons: float | None = None
    habitat: str | None = None
    region: str | None = None
    description: str | None = None


class DinosaurUpdate(BaseModel):
    name: str | None = None
    scientific_name: str | None = None
    period: str | None = None
    diet: str | None = None
    length_min_meters: float | None = None
    length_max_meters: float | None = None
    weight_min_tons: float | None = None
    weight_max_tons: float | None = None
    habitat: str | None = None
    region: str | None = None
    description: str | None = None


class BatchCreateRequest(BaseModel):
    dinosaurs: list[DinosaurCreate]


class FossilsRequest(BaseModel):
    fossils: list[FossilRecord]


class ImagesRequest(BaseModel):
    images: list[ImageRecord]


class ImageDeleteRequest(BaseModel):
    url: str


class ResearchRequest(BaseModel):
    dinosaur_name: str = ""


class BatchResearchRequest(BaseModel):
    dinosaur_names: list[str] = Field(default_factory=list)


# --- Responses ---


class StatusResponse(BaseModel):
    initialized: bool
    message: str
    config: dict[str, Any] | None = None
    stats: dict[str, Any] | None = None
    error: str | None = None


class RecommendationsResponse(BaseModel):
    success: bool
    recommendations: list[str]
    total: int
    message: str
