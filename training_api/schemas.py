from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ThresholdsModel(BaseModel):
    at_risk_completion: int = 30
    at_risk_score: int = 50
    course_attention_completion: int = 60
    course_attention_score: int = 60


class TimePeriodModel(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class DashboardFiltersModel(BaseModel):
    selected_branches: List[str] = Field(default_factory=list)
    selected_district_heads: List[str] = Field(default_factory=list)
    selected_supervisors: List[str] = Field(default_factory=list)
    selected_courses: List[str] = Field(default_factory=list)
    selected_course_types: List[str] = Field(default_factory=list)
    time_period: TimePeriodModel = Field(default_factory=TimePeriodModel)
    thresholds: ThresholdsModel = Field(default_factory=ThresholdsModel)


class ComparisonGroupModel(BaseModel):
    category: Optional[Literal["branch", "district_head", "supervisor"]] = None
    value: Optional[str] = None


class ComparisonRequest(BaseModel):
    filters: DashboardFiltersModel = Field(default_factory=DashboardFiltersModel)
    group_a: ComparisonGroupModel = Field(default_factory=ComparisonGroupModel)
    group_b: ComparisonGroupModel = Field(default_factory=ComparisonGroupModel)


class MetaOptionsResponse(BaseModel):
    branches: List[str]
    district_heads: List[str]
    supervisors: List[str]
    courses: List[str]
    course_types: List[str]
