"""Pydantic schemas for request/response."""
from typing import List
from pydantic import BaseModel, Field


class ComponentSchema(BaseModel):
    weight: float = Field(..., ge=0.0, le=1.0)
    mean: List[float]
    covariance: List[List[float]]


class TimbreDistributionResponse(BaseModel):
    type: str
    name: str
    filename: str
    sample_rate: int
    duration_sec: float
    n_components: int
    dimension: int
    components: List[ComponentSchema]


class ExtractionDefaults(BaseModel):
    components: int
    skip_intro: float
    skip_outro: float
    min_length: float
    sample_rate: int
    window_size: int
    n_mfcc: int
