"""Request and result data structures for capture and compare."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TemporalLabel(str, Enum):
    BEFORE = "before"
    AFTER = "after"


# Directory holding diff images; shares the label namespace on disk
DIFF_LABEL = "diff"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CaptureRequest(_CamelModel):
    # Everything optional so presence is checked in order by the orchestrator
    url: Optional[str] = None
    time: Optional[str] = None
    test_id: Optional[str] = Field(default=None, alias="testId")


class CompareRequest(_CamelModel):
    test_id: Optional[str] = Field(default=None, alias="testId")


class CaptureResult(_CamelModel):
    success: bool = True
    image_path: str = Field(alias="imagePath")
    time: TemporalLabel
    test_id: str = Field(alias="testId")
    timestamp: str


class ComparisonResult(_CamelModel):
    success: bool = True
    test_id: str = Field(alias="testId")
    diff_pixels: int = Field(alias="diffPixels")
    diff_percentage: str = Field(alias="diffPercentage")  # two decimals, e.g. "3.25"
    width: int
    height: int
    before_url: str = Field(alias="beforeUrl")
    after_url: str = Field(alias="afterUrl")
    diff_url: str = Field(alias="diffUrl")


class ErrorResponse(BaseModel):
    # Error-specific keys (field, missing, before/after sizes) sit beside these
    model_config = ConfigDict(extra="allow")

    success: bool = False
    error: str
    details: Optional[str] = None
