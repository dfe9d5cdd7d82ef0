from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExtractedInfo(BaseModel):
    """Partial dinosaur record produced by LLM extraction. Only `name` is required."""

    model_config = ConfigDict(extra="ignore")

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


class FossilRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    discovery_location: str
    discovery_date: str | None = None
    fossil_type: str
    description: str | None = None
    image_url: str | None = None


class ImageRecord(BaseModel):
    url: str
    description: str | None = None


class ValidationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_valid: bool = Field(alias="isValid")
    errors: list[str]
    cleaned_info: ExtractedInfo = Field(alias="cleanedInfo")


@dataclass
class ShapeError:
    """Model output that did not match the expected JSON shape."""

    raw: Any
    reason: str


class PipelineData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    basic_info: ExtractedInfo = Field(alias="basicInfo")
    saved_data: dict[str, Any] = Field(alias="savedData")
    images: list[ImageRecord] = Field(default_factory=list)


class PipelineResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: PipelineData | None = None
    error: str | None = None
    errors: list[str] | None = None
    processing_time: int = Field(alias="processingTime", ge=0)


class ResearchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    dinosaur: PipelineResult | None = None
    error: str | None = None
    errors: list[str] | None = None
    processing_time: int = Field(alias="processingTime", ge=0)
